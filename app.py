# app.py
from __future__ import annotations
import logging
from flask import Flask

from blueprints import api_bp
from config import FLASK_PORT, LOG_LEVEL
from services import ScanServices, build_services


def create_app(services: ScanServices | None = None) -> Flask:
    app = Flask(__name__)
    app.extensions["shelf_scan"] = services or build_services()
    app.register_blueprint(api_bp)

    @app.get("/")
    def index():
        svc = app.extensions["shelf_scan"]
        return {
            "queue_status": svc.queue.queue_status.value,
            "pending_count": svc.queue.pending_count(),
        }

    return app


if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    create_app().run(
        debug=True,
        host="0.0.0.0",
        port=FLASK_PORT,
        use_reloader=False,  # the reloader would start a second drain worker
    )

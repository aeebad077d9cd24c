from flask import Blueprint, current_app, jsonify, request

from errors import PersistenceError
from scanner import RejectReason, is_isbn_shaped, normalize_isbn
from services import ScanServices

bp = Blueprint("api", __name__, url_prefix="/api")


def services() -> ScanServices:
    return current_app.extensions["shelf_scan"]


def scanned_code() -> str:
    """The "code" field of a JSON body. Numbers are taken as digits, anything else is empty."""
    payload = request.get_json(silent=True)
    code = payload.get("code") if isinstance(payload, dict) else None
    if isinstance(code, bool) or not isinstance(code, (str, int)):
        return ""
    return str(code)


@bp.errorhandler(PersistenceError)
def persistence_failed(e: PersistenceError):
    return jsonify({"error": str(e)}), 503


# ========== Scanning ==========

@bp.post("/scan")
def scan_submit():
    raw = scanned_code().strip()
    admission = services().gate.admit(raw)

    if admission.reason is RejectReason.NOT_ISBN_SHAPED:
        return jsonify({"error": "Unsupported code. Expected ISBN-10/13.", "code": admission.code}), 400

    body = {
        "code": admission.code,
        "admitted": admission.admitted,
        "reason": admission.reason.value if admission.reason else None,
    }
    return jsonify(body), 202 if admission.admitted else 200


@bp.post("/scan/lookup")
def scan_lookup():
    isbn = normalize_isbn(scanned_code())

    if not is_isbn_shaped(isbn):
        return jsonify({"error": "Unsupported code. Expected ISBN-10/13."}), 400

    metadata = services().resolver.resolve(isbn)
    if not metadata:
        return jsonify({
            "isbn": isbn,
            "book": None,
            "error": "No provider returned a result for this ISBN."
        }), 200

    book = {
        "title": metadata.title,
        "author": metadata.author,
        "publisher": metadata.publisher,
        "cover_url": metadata.cover_url,
        "summary": metadata.summary,
    }
    return jsonify({"isbn": isbn, "book": book, "provider": metadata.provider, "error": None}), 200


# ========== Queue ==========

@bp.get("/queue")
def queue_state():
    return jsonify(services().queue.state()), 200


@bp.post("/queue/start")
def queue_start():
    queue = services().queue
    queue.start_processing()
    return jsonify(queue.state()), 200


@bp.post("/queue/stop")
def queue_stop():
    queue = services().queue
    queue.stop_processing()
    return jsonify(queue.state()), 200


@bp.post("/queue/clear")
def queue_clear():
    queue = services().queue
    queue.clear_queue()
    return jsonify(queue.state()), 200


@bp.post("/queue/reset-stats")
def queue_reset_stats():
    queue = services().queue
    queue.reset_stats()
    return jsonify(queue.state()), 200


@bp.delete("/queue/<code>")
def queue_remove(code: str):
    queue = services().queue
    queue.remove_from_queue(normalize_isbn(code))
    return jsonify(queue.state()), 200


# ========== Session ==========

@bp.get("/session")
def session_check():
    prompt = services().session.check()
    if prompt is None:
        return jsonify({"prompt": None}), 200
    return jsonify({"prompt": {"pending_count": prompt.pending_count, "message": prompt.message}}), 200


@bp.post("/session/resume")
def session_resume():
    svc = services()
    svc.session.resume()
    return jsonify(svc.queue.state()), 200


@bp.post("/session/discard")
def session_discard():
    svc = services()
    svc.session.discard()
    return jsonify(svc.queue.state()), 200


@bp.get("/session/leave")
def session_leave():
    warning = services().session.leave_warning()
    return jsonify({"confirm_required": warning is not None, "message": warning}), 200


# ========== Inventory ==========

@bp.get("/books")
def books_list():
    q = (request.args.get("q") or "").strip()
    items = [r.to_dict() for r in services().store.list_books(q)]
    return jsonify({"items": items, "count": len(items)}), 200


@bp.get("/books/<isbn>")
def books_get(isbn: str):
    record = services().store.find_by_isbn(normalize_isbn(isbn))
    if not record:
        return jsonify({"error": "Not found"}), 404
    return jsonify(record.to_dict()), 200

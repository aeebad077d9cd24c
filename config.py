# config.py
import os
import dotenv
from pathlib import Path

# ========== Load environment ==========
dotenv.load_dotenv()

FLASK_PORT = int(os.getenv("FLASK_PORT", 5000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Paths for saving outputs
BASE_DIR = Path(os.getenv("LIBRARY_DATA_DIR", "data")).resolve()
QUEUE_STORAGE_KEY = os.getenv("QUEUE_STORAGE_KEY", "scan-queue-storage")

# ========== Metadata lookup ==========
JUHE_BOOK_API_KEY = os.getenv("JUHE_BOOK_API_KEY", "")
METADATA_PROVIDERS = [
    p.strip() for p in os.getenv("METADATA_PROVIDERS", "juhe,google_books").split(",") if p.strip()
]
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10") or "10")

# TTL (seconds). 0 = never cache.
TTL_META = int(os.getenv("METADATA_CACHE_TTL_SECONDS", "86400") or "0")  # 24h default

# ========== Scan queue ==========
DRAIN_DELAY_SECONDS = float(os.getenv("SCAN_DRAIN_DELAY_SECONDS", "1.5") or "1.5")
SUCCESS_LINGER_SECONDS = float(os.getenv("SCAN_SUCCESS_LINGER_SECONDS", "1.0") or "1.0")
DEBOUNCE_SECONDS = float(os.getenv("SCAN_DEBOUNCE_SECONDS", "2.0") or "2.0")

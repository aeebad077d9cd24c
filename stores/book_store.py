# stores/book_store.py
from __future__ import annotations
import os
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import config
from errors import PersistenceError
from models.book import InventoryRecord

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def safe_slug(s: str) -> str:
    keep = "".join(ch.lower() if ch.isalnum() else "-" for ch in (s or "item"))
    while "--" in keep:
        keep = keep.replace("--", "-")
    return keep.strip("-") or "item"


def _write_json(path: Path, obj: Any) -> None:
    tmp = path.with_suffix(".json.tmp")
    tmp.write_text(json.dumps(obj, indent=2, ensure_ascii=False), encoding="utf-8")
    os.replace(tmp, path)


@dataclass(frozen=True)
class BookStore:
    """
    Inventory store: one JSON document per ISBN under items/, plus index.json
    mapping "isbn:<isbn>" to the record id. Every filesystem or JSON failure
    surfaces as PersistenceError; a missing ISBN is a plain None.
    """

    data_root: Path  # e.g. Path(".../data")
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @classmethod
    def default(cls) -> "BookStore":
        return cls(config.BASE_DIR)

    @property
    def items_dir(self) -> Path:
        return self.data_root / "items"

    @property
    def index_path(self) -> Path:
        return self.data_root / "index.json"

    def ensure(self) -> None:
        self.items_dir.mkdir(parents=True, exist_ok=True)
        if not self.index_path.exists():
            _write_json(self.index_path, {"by_identifier": {}})

    def _load_index(self) -> dict[str, Any]:
        self.ensure()
        idx = json.loads(self.index_path.read_text(encoding="utf-8"))
        if not isinstance(idx, dict) or not isinstance(idx.get("by_identifier", {}), dict):
            raise ValueError(f"{self.index_path.name} is not an identifier index")
        return idx

    def _read_item(self, item_id: str) -> InventoryRecord | None:
        p = self.items_dir / f"{item_id}.json"
        if not p.exists():
            return None
        return InventoryRecord.from_dict(json.loads(p.read_text(encoding="utf-8")))

    # ========== Queries ==========

    def find_by_isbn(self, isbn: str) -> InventoryRecord | None:
        with self._lock:
            try:
                idx = self._load_index()
                item_id = idx.get("by_identifier", {}).get(f"isbn:{isbn}")
                if not item_id:
                    return None
                return self._read_item(item_id)
            except (OSError, ValueError, TypeError) as e:
                raise PersistenceError(f"Could not read record for ISBN {isbn}", e) from e

    def list_books(self, q: str | None = None) -> list[InventoryRecord]:
        q = (q or "").strip().lower()
        out: list[InventoryRecord] = []
        with self._lock:
            try:
                self.ensure()
                paths = list(self.items_dir.glob("*.json"))
            except OSError as e:
                raise PersistenceError("Could not list inventory", e) from e

            for p in paths:
                try:
                    rec = InventoryRecord.from_dict(json.loads(p.read_text(encoding="utf-8")))
                except (OSError, ValueError, TypeError) as e:
                    logger.warning("Skipping unreadable record %s: %s", p.name, e)
                    continue
                if q:
                    hay = f"{rec.title} {rec.author or ''}".lower()
                    if q not in hay:
                        continue
                out.append(rec)

        # default sort: newest first
        out.sort(key=lambda r: r.scanned_at or "", reverse=True)
        return out

    # ========== Mutations ==========

    def insert(self, fields: dict[str, Any]) -> InventoryRecord:
        isbn = fields.get("isbn")
        if not isbn:
            raise PersistenceError("Record must include an isbn")

        with self._lock:
            try:
                idx = self._load_index()
                by_ident = idx.setdefault("by_identifier", {})
                ident_key = f"isbn:{isbn}"
                if ident_key in by_ident:
                    raise PersistenceError(f"Duplicate key: a record for ISBN {isbn} already exists")

                now = utc_now_iso()
                title = fields.get("title") or f"book-{isbn}"
                item_id = f"book_isbn_{isbn}_{safe_slug(title)[:32]}"
                data = {"scanned_at": now, "updated_at": now, **fields, "id": item_id}
                record = InventoryRecord.from_dict(data)

                _write_json(self.items_dir / f"{item_id}.json", record.to_dict())
                by_ident[ident_key] = item_id
                _write_json(self.index_path, idx)
            except (OSError, ValueError, TypeError) as e:
                raise PersistenceError(f"Could not insert record for ISBN {isbn}", e) from e

        logger.debug("Inserted %s", item_id)
        return record

    def update(self, isbn: str, fields: dict[str, Any]) -> InventoryRecord:
        with self._lock:
            try:
                idx = self._load_index()
                item_id = idx.get("by_identifier", {}).get(f"isbn:{isbn}")
                existing = self._read_item(item_id) if item_id else None
                if existing is None:
                    raise PersistenceError(f"No record for ISBN {isbn}")

                merged = {**existing.to_dict(), **fields, "id": existing.id, "isbn": existing.isbn}
                if "updated_at" not in fields:
                    merged["updated_at"] = utc_now_iso()
                record = InventoryRecord.from_dict(merged)
                _write_json(self.items_dir / f"{existing.id}.json", record.to_dict())
            except (OSError, ValueError, TypeError) as e:
                raise PersistenceError(f"Could not update record for ISBN {isbn}", e) from e

        return record

# stores/queue_store.py
from __future__ import annotations
import os
import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import config

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    def load(self) -> dict[str, Any] | None: ...

    def save(self, data: dict[str, Any]) -> None: ...

    def remove(self) -> None: ...


class MemorySnapshotStore:
    """Ephemeral fallback used when durable storage can't be opened."""

    def __init__(self, data: dict[str, Any] | None = None):
        self._data = json.loads(json.dumps(data)) if data else None

    def load(self) -> dict[str, Any] | None:
        return json.loads(json.dumps(self._data)) if self._data else None

    def save(self, data: dict[str, Any]) -> None:
        self._data = json.loads(json.dumps(data))

    def remove(self) -> None:
        self._data = None


@dataclass(frozen=True)
class JsonSnapshotStore:
    """One JSON file per storage key under data_root."""

    data_root: Path
    key: str = config.QUEUE_STORAGE_KEY
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def path(self) -> Path:
        return self.data_root / f"{self.key}.json"

    def load(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable queue snapshot %s: %s", self.path, e)
            return None
        return data if isinstance(data, dict) else None

    def save(self, data: dict[str, Any]) -> None:
        with self._lock:
            tmp = self.path.with_suffix(".json.tmp")
            tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, self.path)

    def remove(self) -> None:
        with self._lock:
            self.path.unlink(missing_ok=True)


def open_snapshot_store(data_root: Path | None = None, key: str = config.QUEUE_STORAGE_KEY) -> SnapshotStore:
    """
    Durable store when the data dir is writable, in-memory otherwise.
    Never raises: losing persistence must not stop the scanner from starting.
    """
    root = Path(data_root or config.BASE_DIR)
    try:
        root.mkdir(parents=True, exist_ok=True)
        scratch = root / f".{key}.tmp"
        scratch.write_text("", encoding="utf-8")
        scratch.unlink()
    except OSError as e:
        logger.warning("Queue storage unavailable at %s (%s); running in memory only", root, e)
        return MemorySnapshotStore()
    return JsonSnapshotStore(root, key)

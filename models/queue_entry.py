# models/queue_entry.py
from __future__ import annotations
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class EntryStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class QueueStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"


class Action(str, Enum):
    ADDED = "added"
    INCREMENTED = "incremented"
    PENDING = "pending"
    ERROR = "error"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class EntryResult:
    success: bool
    action: Action
    message: str
    book: dict[str, Any] | None = None

    @classmethod
    def error(cls, message: str) -> "EntryResult":
        return cls(False, Action.ERROR, message)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": self.success,
            "action": self.action.value,
            "message": self.message,
        }
        if self.book is not None:
            out["book"] = dict(self.book)
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EntryResult":
        return cls(
            success=bool(data.get("success")),
            action=Action(data.get("action") or Action.ERROR.value),
            message=data.get("message") or "",
            book=data.get("book"),
        )


@dataclass(frozen=True)
class QueueEntry:
    code: str
    enqueued_at: int = field(default_factory=now_ms)
    status: EntryStatus = EntryStatus.PENDING
    result: EntryResult | None = None
    entry_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def with_status(self, status: EntryStatus, result: EntryResult | None = None) -> "QueueEntry":
        return replace(self, status=status, result=result if result is not None else self.result)

    def to_dict(self) -> dict[str, Any]:
        # An in-flight entry is saved as pending so a crash mid-item retries it.
        status = EntryStatus.PENDING if self.status is EntryStatus.PROCESSING else self.status
        return {
            "entry_id": self.entry_id,
            "code": self.code,
            "enqueued_at": self.enqueued_at,
            "status": status.value,
            "result": self.result.to_dict() if self.result else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueueEntry":
        result = data.get("result")
        return cls(
            code=data["code"],
            enqueued_at=int(data.get("enqueued_at") or now_ms()),
            status=EntryStatus(data.get("status") or EntryStatus.PENDING.value),
            result=EntryResult.from_dict(result) if result else None,
            entry_id=data.get("entry_id") or uuid.uuid4().hex,
        )


@dataclass(frozen=True)
class QueueSnapshot:
    entries: tuple[QueueEntry, ...] = ()
    scanned_count: int = 0
    success_count: int = 0
    failed_count: int = 0

    @property
    def pending_count(self) -> int:
        return sum(1 for e in self.entries if e.status is EntryStatus.PENDING)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "scanned_count": self.scanned_count,
            "success_count": self.success_count,
            "failed_count": self.failed_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueueSnapshot":
        return cls(
            entries=tuple(QueueEntry.from_dict(e) for e in data.get("entries") or []),
            scanned_count=int(data.get("scanned_count") or 0),
            success_count=int(data.get("success_count") or 0),
            failed_count=int(data.get("failed_count") or 0),
        )

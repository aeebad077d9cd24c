# models/book.py
from __future__ import annotations
from dataclasses import asdict, dataclass, fields
from typing import Any


@dataclass(frozen=True)
class BookMetadata:
    title: str
    author: str | None = None
    publisher: str | None = None
    cover_url: str | None = None
    summary: str | None = None
    provider: str | None = None  # diagnostics only, never persisted


@dataclass(frozen=True)
class InventoryRecord:
    id: str
    isbn: str
    title: str
    quantity: int
    scanned_at: str
    updated_at: str
    author: str | None = None
    publisher: str | None = None
    cover_url: str | None = None
    summary: str | None = None
    source: str = "api"
    is_pending: bool = False
    error_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InventoryRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def summary_dict(self) -> dict[str, Any]:
        """The slice of the record shown next to a queue entry."""
        return {
            "id": self.id,
            "isbn": self.isbn,
            "title": self.title,
            "quantity": self.quantity,
            "is_pending": self.is_pending,
        }

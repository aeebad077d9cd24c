# reconciler.py
from __future__ import annotations
import logging
from dataclasses import dataclass

from errors import PersistenceError
from lookup import MetadataResolver
from models.book import InventoryRecord
from models.queue_entry import Action, EntryResult
from stores.book_store import BookStore, utc_now_iso

logger = logging.getLogger(__name__)

SHADOW_TITLE = "Unidentified book (ISBN: {isbn})"
SHADOW_REASON = "No API result"


@dataclass(frozen=True)
class Reconciliation:
    action: Action
    record: InventoryRecord


class Reconciler:
    """
    Find-or-create-or-increment of one scanned ISBN against the inventory.

    Known ISBNs only get their quantity bumped; unknown ones are looked up and
    inserted, or stored as a pending "shadow" record when no provider knows
    the book. Shadow records are never upgraded here.
    """

    def __init__(self, store: BookStore, resolver: MetadataResolver):
        self.store = store
        self.resolver = resolver

    def reconcile(self, isbn: str) -> Reconciliation:
        # 1. dedup
        existing = self.store.find_by_isbn(isbn)

        # 2. accumulate
        if existing:
            updated = self.store.update(
                isbn,
                {"quantity": existing.quantity + 1, "updated_at": utc_now_iso()},
            )
            return Reconciliation(Action.INCREMENTED, updated)

        # 3. fetch, or fall back to a shadow record
        logger.info("New book, fetching metadata for ISBN %s", isbn)
        metadata = self.resolver.resolve(isbn)
        now = utc_now_iso()

        if metadata:
            record = self.store.insert({
                "isbn": isbn,
                "title": metadata.title,
                "author": metadata.author,
                "publisher": metadata.publisher,
                "cover_url": metadata.cover_url,
                "summary": metadata.summary,
                "quantity": 1,
                "source": "api",
                "is_pending": False,
                "scanned_at": now,
                "updated_at": now,
            })
            return Reconciliation(Action.ADDED, record)

        record = self.store.insert({
            "isbn": isbn,
            "title": SHADOW_TITLE.format(isbn=isbn),
            "quantity": 1,
            "source": "api",
            "is_pending": True,
            "error_reason": SHADOW_REASON,
            "scanned_at": now,
            "updated_at": now,
        })
        return Reconciliation(Action.PENDING, record)

    def enter(self, isbn: str) -> EntryResult:
        """Reconcile and phrase the outcome for the person holding the scanner."""
        try:
            outcome = self.reconcile(isbn)
        except PersistenceError as e:
            logger.error("Book entry failed for %s: %s", isbn, e)
            return EntryResult.error(f"Entry failed: {e}")

        return EntryResult(
            success=True,
            action=outcome.action,
            message=describe(outcome),
            book=outcome.record.summary_dict(),
        )


def describe(outcome: Reconciliation) -> str:
    rec = outcome.record
    if outcome.action is Action.INCREMENTED:
        return f"'{rec.title}' incremented, quantity now {rec.quantity}"
    if outcome.action is Action.ADDED:
        return f"'{rec.title}' added to the library"
    return f"ISBN {rec.isbn} could not be identified; created a pending record"

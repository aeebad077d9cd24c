# scanner.py
from __future__ import annotations
import logging
import re
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator

import config
from scan_queue import ScanQueue

logger = logging.getLogger(__name__)

_NON_ISBN = re.compile(r"[^0-9X]", re.IGNORECASE)


# ========== Helpers ==========

def normalize_isbn(raw: str) -> str:
    """
    Accepts scanner input like '978-1-...', ' ISBN:978...', '080442957x'.
    Keeps digits and the X check character, uppercased. Length is not checked.
    """
    return _NON_ISBN.sub("", raw or "").upper()


def is_isbn_shaped(code: str) -> bool:
    return len(code) in (10, 13)


# ========== Ingestion gate ==========

class RejectReason(str, Enum):
    NOT_ISBN_SHAPED = "not-isbn-shaped"
    DEBOUNCED_DUPLICATE = "debounced-duplicate"
    ALREADY_QUEUED = "already-queued"


@dataclass(frozen=True)
class Admission:
    code: str
    reason: RejectReason | None = None

    @property
    def admitted(self) -> bool:
        return self.reason is None


class ScanGate:
    """
    Filters raw barcode reads before they reach the queue.

    A camera decodes the same barcode many times per second, so an identical
    code seen again within `debounce_seconds` of the last one is dropped.
    Only the most recent (code, time) pair is remembered.
    """

    def __init__(
        self,
        queue: ScanQueue,
        debounce_seconds: float = config.DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        on_admit: Callable[[str], None] | None = None,
    ):
        self.queue = queue
        self.debounce_seconds = debounce_seconds
        self.on_admit = on_admit
        self._clock = clock
        self._last_code = ""
        self._last_time = 0.0
        self._lock = threading.Lock()

    def admit(self, raw: str) -> Admission:
        code = normalize_isbn(raw)

        if not is_isbn_shaped(code):
            logger.debug("Invalid ISBN format: %r (cleaned: %r)", raw, code)
            return Admission(code, RejectReason.NOT_ISBN_SHAPED)

        with self._lock:
            now = self._clock()
            if code == self._last_code and now - self._last_time < self.debounce_seconds:
                logger.debug("Repeated scan, skipping: %s", code)
                return Admission(code, RejectReason.DEBOUNCED_DUPLICATE)
            self._last_code = code
            self._last_time = now

        if not self.queue.add_to_queue(code):
            return Admission(code, RejectReason.ALREADY_QUEUED)

        logger.info("Scanned ISBN %s", code)
        self._pulse(code)
        return Admission(code)

    def _pulse(self, code: str) -> None:
        if self.on_admit is None:
            return
        try:
            self.on_admit(code)
        except Exception as e:
            logger.debug("Scan feedback unavailable: %s", e)


# ========== Scanner ==========

def listen_scanner(prompt: str = "Scan barcode/ISBN: ") -> Iterator[str]:
    """
    Generator that yields raw lines from stdin (scanner acts like keyboard).
    Stops on EOF.
    """
    while True:
        try:
            raw = input(prompt)
        except EOFError:
            return
        raw = raw.strip()
        if raw:
            yield raw

# session.py
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from typing import Callable

from scan_queue import ScanQueue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResumePrompt:
    pending_count: int

    @property
    def message(self) -> str:
        return f"{self.pending_count} book(s) from last time were not synced yet. Resume?"


class SessionResumeController:
    """
    Decides, once per session, whether unfinished work from a previous run
    should be resumed or thrown away, and guards leaving while work is pending.
    """

    def __init__(self, queue: ScanQueue):
        self.queue = queue
        self._checked = False
        self._lock = threading.Lock()

    def check(self) -> ResumePrompt | None:
        with self._lock:
            if self._checked:
                return None
            self._checked = True

        pending = self.queue.pending_count()
        if pending:
            logger.info("Found %d unfinished scan(s) from a previous session", pending)
            return ResumePrompt(pending)
        return None

    def resume(self) -> None:
        logger.info("Resuming previous scan session")
        self.queue.start_processing()

    def discard(self) -> None:
        logger.info("Discarding previous scan session")
        self.queue.clear_queue()

    def leave_warning(self) -> str | None:
        pending = self.queue.pending_count()
        if pending:
            return f"{pending} book(s) still waiting to sync. Leave anyway?"
        return None

    def confirm_leave(self, confirm: Callable[[str], bool]) -> bool:
        warning = self.leave_warning()
        if warning is None:
            return True
        return bool(confirm(warning))

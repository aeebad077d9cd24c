# scan_queue.py
from __future__ import annotations
import logging
import threading
import time
from typing import Any, Callable

import config
from models.queue_entry import EntryResult, EntryStatus, QueueEntry, QueueSnapshot, QueueStatus
from stores.queue_store import MemorySnapshotStore, SnapshotStore

logger = logging.getLogger(__name__)

Processor = Callable[[str], EntryResult]
Observer = Callable[["ScanQueue"], None]


class ScanQueue:
    """
    Persisted FIFO of scanned codes, drained by a single worker thread.

    The worker takes the oldest pending entry, runs `process(code)` on it,
    records success/failure, then waits `drain_delay` seconds before looking
    again. Successful entries drop out after `success_linger` seconds; failed
    ones stay until removed or cleared.

    All state lives behind one lock and every mutation goes through the
    methods below; each one persists the snapshot and notifies observers.
    """

    def __init__(
        self,
        process: Processor,
        storage: SnapshotStore | None = None,
        drain_delay: float = config.DRAIN_DELAY_SECONDS,
        success_linger: float = config.SUCCESS_LINGER_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._process = process
        self._storage = storage if storage is not None else MemorySnapshotStore()
        self.drain_delay = drain_delay
        self.success_linger = success_linger
        self._sleep = sleep

        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._entries: list[QueueEntry] = []
        self._scanned_count = 0
        self._success_count = 0
        self._failed_count = 0
        # in-memory only, rebuilt on every start
        self._status = QueueStatus.IDLE
        self._processing_count = 0
        self._worker: threading.Thread | None = None
        self._timers: dict[str, threading.Timer] = {}
        self._observers: list[Observer] = []

        self._restore()

    # ========== Read side ==========

    @property
    def queue_status(self) -> QueueStatus:
        return self._status

    @property
    def processing_count(self) -> int:
        return self._processing_count

    def entries(self) -> list[QueueEntry]:
        with self._lock:
            return list(self._entries)

    def pending_count(self) -> int:
        with self._lock:
            return sum(1 for e in self._entries if e.status is EntryStatus.PENDING)

    def snapshot(self) -> QueueSnapshot:
        with self._lock:
            return QueueSnapshot(
                entries=tuple(self._entries),
                scanned_count=self._scanned_count,
                success_count=self._success_count,
                failed_count=self._failed_count,
            )

    def state(self) -> dict[str, Any]:
        with self._lock:
            snap = self.snapshot()
            out = snap.to_dict()
            # live statuses here, unlike the persisted form
            out["entries"] = [{**e.to_dict(), "status": e.status.value} for e in snap.entries]
            out["queue_status"] = self._status.value
            out["processing_count"] = self._processing_count
            out["pending_count"] = snap.pending_count
            return out

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until the drain worker has exited. False on timeout."""
        with self._changed:
            return self._changed.wait_for(lambda: self._worker is None, timeout)

    # ========== Mutations ==========

    def add_to_queue(self, code: str) -> bool:
        """Append a pending entry. False when the code is already pending."""
        with self._lock:
            if any(e.code == code and e.status is EntryStatus.PENDING for e in self._entries):
                logger.debug("ISBN already queued: %s", code)
                return False

            self._entries.append(QueueEntry(code))
            self._scanned_count += 1
            self._commit()
            idle = self._status is QueueStatus.IDLE

        self._notify()
        if idle:
            self.start_processing()
        return True

    def remove_from_queue(self, code: str) -> None:
        with self._lock:
            gone = [e for e in self._entries if e.code == code]
            if not gone:
                return
            for e in gone:
                self._cancel_timer(e.entry_id)
            self._entries = [e for e in self._entries if e.code != code]
            self._commit()
        self._notify()

    def clear_queue(self) -> None:
        with self._lock:
            for entry_id in list(self._timers):
                self._cancel_timer(entry_id)
            self._entries = []
            self._scanned_count = 0
            self._success_count = 0
            self._failed_count = 0
            self._processing_count = 0
            self._status = QueueStatus.IDLE
            self._commit()
        logger.info("Scan queue cleared")
        self._notify()

    def reset_stats(self) -> None:
        with self._lock:
            self._scanned_count = 0
            self._success_count = 0
            self._failed_count = 0
            self._commit()
        self._notify()

    def start_processing(self) -> None:
        with self._lock:
            if self._status is QueueStatus.PROCESSING:
                return
            if not self._entries:
                self._status = QueueStatus.IDLE
                return

            self._status = QueueStatus.PROCESSING
            # a worker still finishing its last cycle picks the new status up
            if self._worker is None:
                self._worker = threading.Thread(target=self._drain, name="scan-queue-drain", daemon=True)
                self._worker.start()
            self._changed.notify_all()
        self._notify()

    def stop_processing(self) -> None:
        """Halt after the in-flight entry (if any) completes."""
        with self._lock:
            self._status = QueueStatus.IDLE
            self._changed.notify_all()
        self._notify()

    def shutdown(self, timeout: float | None = None) -> bool:
        self.stop_processing()
        idle = self.wait_until_idle(timeout)
        with self._lock:
            for entry_id in list(self._timers):
                self._cancel_timer(entry_id)
        return idle

    # ========== Drain loop ==========

    def _drain(self) -> None:
        logger.info("Drain loop started")
        try:
            while self._step():
                if self.drain_delay > 0:
                    self._sleep(self.drain_delay)
        finally:
            with self._lock:
                # only reached with _worker still set if _step blew up
                if self._worker is threading.current_thread():
                    self._worker = None
                    self._status = QueueStatus.IDLE
                    self._processing_count = 0
                    self._changed.notify_all()
            self._notify()
            logger.info("Drain loop idle")

    def _step(self) -> bool:
        """Process one entry. False when the loop should exit."""
        with self._lock:
            entry = None
            if self._status is QueueStatus.PROCESSING:
                entry = next((e for e in self._entries if e.status is EntryStatus.PENDING), None)
            if entry is None:
                self._status = QueueStatus.IDLE
                self._processing_count = 0
                self._worker = None
                self._changed.notify_all()
                return False

            entry = entry.with_status(EntryStatus.PROCESSING)
            self._replace(entry)
            self._processing_count = 1
            self._commit()
        self._notify()

        result = self._run(entry.code)

        with self._lock:
            self._processing_count = 0
            status = EntryStatus.SUCCESS if result.success else EntryStatus.FAILED
            if self._replace(entry.with_status(status, result)):
                if result.success:
                    self._success_count += 1
                    self._schedule_removal(entry.entry_id)
                else:
                    self._failed_count += 1
            else:
                logger.debug("Entry %s was removed while in flight", entry.code)
            self._commit()
        self._notify()
        return True

    def _run(self, code: str) -> EntryResult:
        try:
            return self._process(code)
        except Exception as e:
            logger.exception("Processing %s failed", code)
            return EntryResult.error(str(e) or e.__class__.__name__)

    # ========== Internals (lock held) ==========

    def _replace(self, entry: QueueEntry) -> bool:
        for i, e in enumerate(self._entries):
            if e.entry_id == entry.entry_id:
                self._entries[i] = entry
                return True
        return False

    def _schedule_removal(self, entry_id: str) -> None:
        timer = threading.Timer(self.success_linger, self._expire, args=(entry_id,))
        timer.daemon = True
        self._timers[entry_id] = timer
        timer.start()

    def _cancel_timer(self, entry_id: str) -> None:
        timer = self._timers.pop(entry_id, None)
        if timer:
            timer.cancel()

    def _expire(self, entry_id: str) -> None:
        with self._lock:
            if self._timers.pop(entry_id, None) is None:
                return  # cancelled
            before = len(self._entries)
            self._entries = [e for e in self._entries if e.entry_id != entry_id]
            if len(self._entries) == before:
                return
            self._commit()
        self._notify()

    def _commit(self) -> None:
        try:
            self._storage.save(self.snapshot().to_dict())
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Could not persist scan queue, continuing in memory: %s", e)
        self._changed.notify_all()

    def _notify(self) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(self)
            except Exception:
                logger.exception("Queue observer failed")

    def _restore(self) -> None:
        try:
            data = self._storage.load()
            snap = QueueSnapshot.from_dict(data) if data else QueueSnapshot()
        except (OSError, KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable queue snapshot: %s", e)
            snap = QueueSnapshot()

        with self._lock:
            self._entries = [
                e.with_status(EntryStatus.PENDING) if e.status is EntryStatus.PROCESSING else e
                for e in snap.entries
            ]
            self._scanned_count = snap.scanned_count
            self._success_count = snap.success_count
            self._failed_count = snap.failed_count
            # saved before their removal timer fired
            for e in self._entries:
                if e.status is EntryStatus.SUCCESS:
                    self._schedule_removal(e.entry_id)

        if snap.entries:
            logger.info("Restored %d queued scan(s), %d pending", len(snap.entries), snap.pending_count)

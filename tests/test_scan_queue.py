"""
Tests for the scan queue and its drain loop.

The queues built here have no pacing delay; processors either answer at
once or block on an event so a test can act while an entry is in flight.
"""

from models.queue_entry import Action, EntryResult, EntryStatus, QueueEntry, QueueSnapshot, QueueStatus
from stores.queue_store import MemorySnapshotStore
from tests.conftest import GatedProcessor, ok_result, wait_for

A, B, C = "9780131103627", "9780201633610", "0804429579"


def statuses(queue):
    return {e.code: e.status for e in queue.entries()}


class TestAdding:

    def test_add_starts_drain_and_counts_scan(self, make_queue):
        queue = make_queue(ok_result)
        assert queue.add_to_queue(A) is True
        assert queue.wait_until_idle(5)

        snap = queue.snapshot()
        assert snap.scanned_count == 1
        assert snap.success_count == 1
        assert statuses(queue) == {A: EntryStatus.SUCCESS}
        assert queue.queue_status is QueueStatus.IDLE

    def test_pending_duplicate_is_rejected(self, make_queue):
        proc = GatedProcessor()
        queue = make_queue(proc)
        queue.add_to_queue(A)
        assert proc.started.wait(5)

        assert queue.add_to_queue(B) is True
        assert queue.add_to_queue(B) is False
        assert queue.snapshot().scanned_count == 2

        proc.release.set()
        assert queue.wait_until_idle(5)

    def test_finished_code_can_be_queued_again(self, make_queue):
        queue = make_queue(ok_result)
        queue.add_to_queue(A)
        assert queue.wait_until_idle(5)

        assert queue.add_to_queue(A) is True
        assert queue.wait_until_idle(5)
        assert [e.code for e in queue.entries()] == [A, A]
        assert queue.snapshot().success_count == 2


class TestDrainLoop:

    def test_entries_are_processed_in_fifo_order(self, make_queue):
        proc = GatedProcessor()
        queue = make_queue(proc)
        queue.add_to_queue(A)
        assert proc.started.wait(5)
        queue.add_to_queue(B)
        queue.add_to_queue(C)

        proc.release.set()
        assert queue.wait_until_idle(5)
        assert proc.calls == [A, B, C]

    def test_at_most_one_entry_processing(self, make_queue):
        samples = []

        def process(code):
            samples.append(sum(1 for e in queue.entries() if e.status is EntryStatus.PROCESSING))
            return ok_result(code)

        queue = make_queue(process)
        queue.subscribe(lambda q: samples.append(
            sum(1 for e in q.entries() if e.status is EntryStatus.PROCESSING)
        ))
        for code in (A, B, C):
            queue.add_to_queue(code)
        assert queue.wait_until_idle(5)

        assert samples
        assert max(samples) <= 1
        assert samples.count(1) >= 3

    def test_stop_lets_in_flight_entry_finish(self, make_queue):
        proc = GatedProcessor()
        queue = make_queue(proc)
        queue.add_to_queue(A)
        assert proc.started.wait(5)
        queue.add_to_queue(B)
        queue.add_to_queue(C)

        queue.stop_processing()
        proc.release.set()
        assert queue.wait_until_idle(5)

        assert proc.calls == [A]
        assert statuses(queue) == {A: EntryStatus.SUCCESS, B: EntryStatus.PENDING, C: EntryStatus.PENDING}
        assert queue.queue_status is QueueStatus.IDLE
        assert queue.processing_count == 0

    def test_start_is_idempotent(self, make_queue):
        proc = GatedProcessor()
        queue = make_queue(proc)
        queue.add_to_queue(A)
        assert proc.started.wait(5)

        worker = queue._worker
        queue.start_processing()
        queue.start_processing()
        assert queue._worker is worker

        proc.release.set()
        assert queue.wait_until_idle(5)
        assert proc.calls == [A]

    def test_restart_after_stop_resumes_pending(self, make_queue):
        proc = GatedProcessor()
        queue = make_queue(proc)
        queue.add_to_queue(A)
        assert proc.started.wait(5)
        queue.add_to_queue(B)
        queue.stop_processing()
        proc.release.set()
        assert queue.wait_until_idle(5)

        queue.start_processing()
        assert queue.wait_until_idle(5)
        assert proc.calls == [A, B]

    def test_failures_are_kept_and_loop_continues(self, make_queue):
        def process(code):
            if code == A:
                raise RuntimeError("provider exploded")
            return ok_result(code)

        queue = make_queue(process)
        queue.add_to_queue(A)
        queue.add_to_queue(B)
        assert wait_for(lambda: statuses(queue).get(B) is EntryStatus.SUCCESS)
        assert queue.wait_until_idle(5)

        failed = next(e for e in queue.entries() if e.code == A)
        assert failed.status is EntryStatus.FAILED
        assert failed.result.action is Action.ERROR
        assert failed.result.message == "provider exploded"
        snap = queue.snapshot()
        assert (snap.success_count, snap.failed_count) == (1, 1)

    def test_unsuccessful_result_marks_failed(self, make_queue):
        proc = GatedProcessor(fail={A})
        proc.release.set()
        queue = make_queue(proc)
        queue.add_to_queue(A)
        assert queue.wait_until_idle(5)
        assert statuses(queue) == {A: EntryStatus.FAILED}
        assert queue.snapshot().failed_count == 1


class TestRemoval:

    def test_success_is_removed_after_linger(self, make_queue):
        queue = make_queue(ok_result, success_linger=0.05)
        queue.add_to_queue(A)
        assert queue.wait_until_idle(5)
        assert wait_for(lambda: queue.entries() == [])
        assert queue.snapshot().success_count == 1

    def test_failed_entry_stays(self, make_queue):
        proc = GatedProcessor(fail={A})
        proc.release.set()
        queue = make_queue(proc, success_linger=0.01)
        queue.add_to_queue(A)
        assert queue.wait_until_idle(5)
        assert not wait_for(lambda: queue.entries() == [], timeout=0.2)

    def test_clear_cancels_scheduled_removals(self, make_queue):
        queue = make_queue(ok_result, success_linger=5.0)
        queue.add_to_queue(A)
        assert queue.wait_until_idle(5)
        assert queue._timers

        queue.clear_queue()
        assert queue._timers == {}
        snap = queue.snapshot()
        assert snap.entries == ()
        assert (snap.scanned_count, snap.success_count, snap.failed_count) == (0, 0, 0)

    def test_clear_during_flight_drops_outcome(self, make_queue):
        proc = GatedProcessor()
        queue = make_queue(proc)
        queue.add_to_queue(A)
        assert proc.started.wait(5)

        queue.clear_queue()
        proc.release.set()
        assert queue.wait_until_idle(5)
        assert queue.entries() == []
        assert queue.snapshot().success_count == 0

    def test_remove_from_queue(self, make_queue):
        proc = GatedProcessor()
        queue = make_queue(proc)
        queue.add_to_queue(A)
        assert proc.started.wait(5)
        queue.add_to_queue(B)

        queue.remove_from_queue(B)
        proc.release.set()
        assert queue.wait_until_idle(5)
        assert proc.calls == [A]

    def test_reset_stats_keeps_entries(self, make_queue):
        proc = GatedProcessor(fail={A})
        proc.release.set()
        queue = make_queue(proc)
        queue.add_to_queue(A)
        assert queue.wait_until_idle(5)

        queue.reset_stats()
        snap = queue.snapshot()
        assert (snap.scanned_count, snap.failed_count) == (0, 0)
        assert [e.code for e in snap.entries] == [A]


class TestPersistence:

    def test_snapshot_survives_restart(self, make_queue):
        storage = MemorySnapshotStore()
        proc = GatedProcessor()
        queue = make_queue(proc, storage)
        queue.add_to_queue(A)
        assert proc.started.wait(5)
        queue.add_to_queue(B)
        saved = storage.load()

        restored = make_queue(ok_result, MemorySnapshotStore(saved))
        # the in-flight entry comes back as pending
        assert statuses(restored) == {A: EntryStatus.PENDING, B: EntryStatus.PENDING}
        assert restored.snapshot().scanned_count == 2
        assert restored.queue_status is QueueStatus.IDLE
        assert restored.processing_count == 0

        proc.release.set()

    def test_every_mutation_is_saved(self, make_queue):
        storage = MemorySnapshotStore()
        queue = make_queue(ok_result, storage)
        queue.add_to_queue(A)
        assert queue.wait_until_idle(5)

        data = storage.load()
        assert data["success_count"] == 1
        assert data["entries"][0]["status"] == "success"
        assert data["entries"][0]["result"]["action"] == "added"

    def test_save_failure_does_not_stop_queue(self, make_queue):
        class BrokenStorage(MemorySnapshotStore):
            def save(self, data):
                raise OSError("read-only filesystem")

        queue = make_queue(ok_result, BrokenStorage())
        queue.add_to_queue(A)
        assert queue.wait_until_idle(5)
        assert statuses(queue) == {A: EntryStatus.SUCCESS}

    def test_unreadable_snapshot_starts_empty(self, make_queue):
        queue = make_queue(ok_result, MemorySnapshotStore({"entries": [{"status": "pending"}]}))
        assert queue.entries() == []

    def test_restored_success_is_removed_after_linger(self, make_queue):
        saved = QueueSnapshot(
            entries=(QueueEntry(A, status=EntryStatus.SUCCESS, result=ok_result(A)),
                     QueueEntry(B, status=EntryStatus.FAILED, result=EntryResult.error("Entry failed: x"))),
            scanned_count=2, success_count=1, failed_count=1,
        )
        queue = make_queue(ok_result, MemorySnapshotStore(saved.to_dict()), success_linger=0.05)

        assert wait_for(lambda: statuses(queue) == {B: EntryStatus.FAILED})
        assert queue.snapshot().success_count == 1

"""
Shared fixtures for the scan pipeline tests.

Nothing here talks to the network: providers are stubs or sit on a mocked
requests session, and every store lives under tmp_path.
"""

import threading
import time
from unittest.mock import MagicMock

import pytest

from lookup import MetadataResolver, Provider
from models.queue_entry import Action, EntryResult
from reconciler import Reconciler
from scan_queue import ScanQueue
from scanner import ScanGate
from services import ScanServices
from session import SessionResumeController
from stores.book_store import BookStore
from stores.queue_store import JsonSnapshotStore

ISBN = "9780131103627"


class StubProvider(Provider):
    """Provider with a canned answer (or error) instead of an HTTP call."""

    def __init__(self, name, answer=None, error=None):
        super().__init__(session=MagicMock())
        self.name = name
        self.answer = answer
        self.error = error
        self.calls = []

    def lookup(self, isbn):
        self.calls.append(isbn)
        if self.error is not None:
            raise self.error
        return self.answer


class GatedProcessor:
    """Queue processor that blocks on its first call until released."""

    def __init__(self, fail=()):
        self.calls = []
        self.fail = set(fail)
        self.started = threading.Event()
        self.release = threading.Event()

    def __call__(self, code):
        self.calls.append(code)
        self.started.set()
        assert self.release.wait(5), "processor was never released"
        if code in self.fail:
            return EntryResult.error(f"Entry failed: {code}")
        return ok_result(code)


def ok_result(code):
    return EntryResult(True, Action.ADDED, f"'{code}' added to the library", {"isbn": code})


def google_payload(title=None, **volume):
    info = dict(volume)
    if title is not None:
        info["title"] = title
    return {"items": [{"id": "vol-1", "volumeInfo": info}]}


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def book_store(tmp_path):
    return BookStore(tmp_path / "data")


@pytest.fixture
def make_queue():
    """Build ScanQueues with no pacing delay; all are shut down afterwards."""
    queues = []

    def factory(process, storage=None, success_linger=60.0):
        q = ScanQueue(process, storage, drain_delay=0, success_linger=success_linger)
        queues.append(q)
        return q

    yield factory

    for q in queues:
        q.shutdown(timeout=5)


@pytest.fixture
def services(tmp_path):
    root = tmp_path / "data"
    root.mkdir()
    store = BookStore(root)
    resolver = MetadataResolver(
        [StubProvider("google_books", google_payload("Design Patterns", authors=["Erich Gamma"]))],
        cache_ttl=0,
    )
    reconciler = Reconciler(store, resolver)
    queue = ScanQueue(reconciler.enter, JsonSnapshotStore(root), drain_delay=0, success_linger=60.0)
    svc = ScanServices(
        store=store,
        resolver=resolver,
        reconciler=reconciler,
        queue=queue,
        gate=ScanGate(queue),
        session=SessionResumeController(queue),
    )
    yield svc
    queue.shutdown(timeout=5)

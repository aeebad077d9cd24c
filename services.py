# services.py
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import config
from lookup import MetadataResolver, build_providers
from reconciler import Reconciler
from scan_queue import ScanQueue
from scanner import ScanGate
from session import SessionResumeController
from stores.book_store import BookStore
from stores.queue_store import open_snapshot_store


@dataclass
class ScanServices:
    store: BookStore
    resolver: MetadataResolver
    reconciler: Reconciler
    queue: ScanQueue
    gate: ScanGate
    session: SessionResumeController


def build_services(
    data_root: Path | None = None,
    resolver: MetadataResolver | None = None,
    on_admit: Callable[[str], None] | None = None,
) -> ScanServices:
    """Wire up one scanner stack. Call once per process."""
    root = Path(data_root or config.BASE_DIR)
    store = BookStore(root)
    resolver = resolver or MetadataResolver(build_providers())
    reconciler = Reconciler(store, resolver)
    queue = ScanQueue(reconciler.enter, open_snapshot_store(root))
    gate = ScanGate(queue, on_admit=on_admit)
    return ScanServices(
        store=store,
        resolver=resolver,
        reconciler=reconciler,
        queue=queue,
        gate=gate,
        session=SessionResumeController(queue),
    )

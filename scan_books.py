# scan_books.py
import logging
import sys

from config import LOG_LEVEL
from models.queue_entry import EntryStatus
from scan_queue import ScanQueue
from scanner import listen_scanner
from services import build_services


def beep(_code: str) -> None:
    # terminal bell stands in for the phone's vibration
    sys.stdout.write("\a")
    sys.stdout.flush()


def ask(question: str) -> bool:
    answer = input(f"{question} [y/N] ").strip().lower()
    return answer in ("y", "yes")


def report(queue: ScanQueue, seen: set[str]) -> None:
    entries = queue.entries()
    # forget entries that left the queue
    seen.intersection_update(e.entry_id for e in entries)
    for entry in entries:
        if entry.result is None or entry.entry_id in seen:
            continue
        if entry.status in (EntryStatus.SUCCESS, EntryStatus.FAILED):
            seen.add(entry.entry_id)
            mark = "OK " if entry.status is EntryStatus.SUCCESS else "ERR"
            print(f"\n[{mark}] {entry.code}: {entry.result.message}")


def main():
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    svc = build_services(on_admit=beep)
    print(f"Data dir: {svc.store.data_root}")

    prompt = svc.session.check()
    if prompt:
        if ask(prompt.message):
            svc.session.resume()
        else:
            svc.session.discard()

    seen: set[str] = set()
    svc.queue.subscribe(lambda q: report(q, seen))

    print("Ready. Ctrl+C to exit.")
    try:
        for raw in listen_scanner():
            admission = svc.gate.admit(raw)
            if not admission.admitted:
                print(f"Skipped {raw!r}: {admission.reason.value}")
    except KeyboardInterrupt:
        if not svc.session.confirm_leave(ask):
            print("Waiting for the queue to finish...")
            svc.queue.wait_until_idle()
    else:
        # stdin closed: let the remaining scans drain
        svc.queue.wait_until_idle()
    svc.queue.shutdown(timeout=5)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nUser aborted program! Exiting.")
        exit()
    except Exception as e:
        print(f"\nAn error occured: {e}")
        exit(1)

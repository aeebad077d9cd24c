# errors.py
from __future__ import annotations


class ShelfScanError(Exception):
    """Base class for errors raised by the scan pipeline."""


class ProviderError(ShelfScanError):
    """
    A metadata provider failed (network, HTTP client or payload parsing).
    The resolver treats it like "no answer" and moves on, but keeps it
    apart in the logs.
    """

    def __init__(self, provider: str, cause: BaseException | str):
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider}: {cause}")


class PersistenceError(ShelfScanError):
    """Inventory store read/write failed. Fatal to the current reconciliation."""

    def __init__(self, message: str, cause: BaseException | None = None):
        self.cause = cause
        super().__init__(f"{message}: {cause}" if cause else message)

"""Cooperative cancellation for agent runs."""

import threading
from typing import Optional


class RunCancelledError(Exception):
    """Raised when a run is cancelled before it could finish."""
    pass


class CancellationToken:
    """Thread-safe flag observed by the workflow engine and the model caller."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError(self.reason or "cancelled")

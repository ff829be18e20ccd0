"""Cooperative cancellation for long-running installs."""

from __future__ import annotations

import threading

__all__ = ["CancelToken", "Cancelled"]


class Cancelled(Exception):
    """Raised inside a stage when its token has been cancelled."""


class CancelToken:
    """Thread-safe cancellation flag shared by a caller and a pipeline.

    Usage:
        token = CancelToken()
        pipeline.install("zig", version, cancel=token)  # in a worker
        token.cancel()                                   # from elsewhere
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled()

"""Cooperative cancellation for long-running calculations."""

from __future__ import annotations

import threading


class CancellationToken:
    """
    Thread-safe cancel flag.

    Contract:
        The owner of a long-running operation polls ``cancelled`` between
        units of work and before commit.  ``cancel()`` may be called from any
        thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

"""Cooperative cancellation of long-running operations."""

from __future__ import annotations

import threading

from scribeline.exceptions import JobCancelled


class CancellationToken:
    """Signal that can be shared across threads to cancel work cooperatively."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Signal that the associated work should stop."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Return True when cancellation has been requested."""
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise ``JobCancelled`` if cancellation was requested."""
        if self.cancelled:
            raise JobCancelled("Cancelled by caller")


def check(token: CancellationToken | None) -> None:
    """Raise ``JobCancelled`` when an optional token has been cancelled."""
    if token is not None:
        token.raise_if_cancelled()

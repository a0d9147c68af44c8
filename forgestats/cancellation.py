"""Cooperative cancellation shared by the fetchers of one snapshot."""

import threading

from .errors import Cancelled


class CancellationToken:
    """
    A flag that fetchers check between pages and between retry attempts.

    Cancelling never interrupts a request already in flight; it only stops
    new ones from being issued.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise Cancelled if cancellation was requested."""
        if self._event.is_set():
            raise Cancelled("Operation cancelled")

    def sleep(self, seconds: float) -> None:
        """
        Sleep for up to ``seconds``, waking early on cancellation.

        Raises:
            Cancelled: If the token is cancelled before or during the wait
        """
        if seconds > 0:
            self._event.wait(seconds)
        self.raise_if_cancelled()

"""Per-turn cancellation token."""

import asyncio

from projectpilot.core.errors import TurnCancelled


class CancellationToken:
    """
    Cooperative cancellation for one agent turn.

    Cancelling interrupts a pending backoff sleep and stops the dispatcher from starting further
    tool calls.  Network requests already in flight are allowed to finish.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TurnCancelled("The turn was cancelled.")

    async def sleep(self, delay: float) -> None:
        """Sleep for *delay* seconds unless cancelled first."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()

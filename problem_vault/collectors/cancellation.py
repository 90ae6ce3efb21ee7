"""Cooperative cancellation shared by collection and pipeline jobs."""

import asyncio


class CollectionCancelledError(Exception):
    """Raised when cancellation is observed during a backoff sleep."""


class CancellationToken:
    """
    A flag that long-running jobs poll at loop boundaries.

    Jobs never get interrupted mid-request: they check ``cancelled`` before
    each target, page or signal and sleep through ``sleep()`` so a stop
    request ends a delay immediately.

    Usage:
        token = CancellationToken()
        for page in pages:
            if token.cancelled:
                break
            ...
            if not await token.sleep(0.6):
                break
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
            raise CollectionCancelledError("Collection cancelled")

    async def sleep(self, delay: float) -> bool:
        """
        Sleep for ``delay`` seconds unless cancelled first.

        Returns:
            True if the full delay elapsed, False if cancellation cut it short
        """
        if self._event.is_set():
            return False
        if delay <= 0:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return True
        return False

"""
Cooperative cancellation for analysis requests.

A token is shared between the caller and one ``analyze`` call. The
orchestrator checks it before every attempt and races it against every
backoff wait; an HTTP request already on the wire is not interrupted.

Usage:
    token = CancellationToken()
    task = asyncio.create_task(orchestrator.analyze(report, cancellation_token=token))
    ...
    token.cancel()
"""

import asyncio

from app.errors import CanceledError


class CancellationToken:
    """Cancellation flag that can also be awaited."""

    def __init__(self):
        self._cancelled = asyncio.Event()

    def cancel(self):
        """Request cancellation."""
        self._cancelled.set()

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._cancelled.is_set()

    def raise_if_cancelled(self):
        """Raise CanceledError if cancelled."""
        if self.is_cancelled:
            raise CanceledError()

    async def sleep(self, seconds: float):
        """Wait for ``seconds``, or raise CanceledError as soon as the token fires."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=max(0.0, seconds))
        except asyncio.TimeoutError:
            return
        raise CanceledError()

"""Cooperative cancellation for long orchestration runs.

A run can last hours (``max_poll_cycles * poll_interval`` per batch). The
orchestrator checks a :class:`CancellationToken` before every submission and
waits on it between poll cycles, so a cancel request takes effect at the next
cycle boundary without interrupting an in-flight HTTP call.

The token may be created outside any event loop; the underlying
``asyncio.Event`` is only built on first use inside the running loop.
"""

from __future__ import annotations

import asyncio
from typing import Optional


class CancellationToken:
    """An awaitable, one-shot cancel flag."""

    def __init__(self) -> None:
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation. Later calls keep the first reason."""
        if self._cancelled:
            return
        self._cancelled = True
        self.reason = reason
        if self._event is not None:
            self._event.set()

    async def wait(self, timeout: float) -> bool:
        """Sleep for up to ``timeout`` seconds, waking early on cancellation.

        Returns:
            True if the token was cancelled, False if the timeout elapsed.
        """
        if self._cancelled or timeout <= 0:
            return self._cancelled
        if self._event is None:
            self._event = asyncio.Event()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

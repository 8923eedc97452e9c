"""
Cancellation - The single abort flag shared by one gather run.

The aggregator owns the signal; the walker and the adapters only read it.
Once aborted it stays aborted, and the first reason wins.
"""

import asyncio
import logging
from typing import Optional


logger = logging.getLogger(__name__)


class CancellationSignal:
    """
    Monotonic abort flag with an optional reason.

    Backed by an asyncio.Event so producers can also await it (for
    example to race a slow external call against an early close).
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def abort(self, reason: Optional[str] = None) -> None:
        """Set the flag. Later calls are no-ops."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.debug(f"Gather cancelled: {reason or 'no reason given'}")

    async def wait(self) -> Optional[str]:
        """Suspend until the signal fires, then return the reason."""
        await self._event.wait()
        return self._reason

    def __repr__(self) -> str:
        if self.aborted:
            return f"CancellationSignal(aborted, reason={self._reason!r})"
        return "CancellationSignal(active)"

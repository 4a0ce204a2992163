"""
Outbound request gate shared by every pass that talks to the same feed.
"""

import asyncio
import time
from typing import Dict, Optional


class RequestGate:
    """
    Serialise requests to one upstream feed.

    Only one request is in flight at a time, and consecutive requests are
    spaced by at least ``min_interval`` seconds.
    """

    def __init__(self, min_interval: float = 0.0):
        self.min_interval = min_interval
        self._semaphore = asyncio.Semaphore(1)
        self._last_request_at: Optional[float] = None

    async def __aenter__(self):
        await self._semaphore.acquire()
        try:
            if self._last_request_at is not None and self.min_interval > 0:
                wait = self.min_interval - (time.monotonic() - self._last_request_at)
                if wait > 0:
                    await asyncio.sleep(wait)
        except BaseException:
            self._semaphore.release()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self._last_request_at = time.monotonic()
        self._semaphore.release()
        return False


class GateRegistry:
    """One gate per feed name, created on demand."""

    def __init__(self, min_interval: float = 0.0):
        self.min_interval = min_interval
        self._gates: Dict[str, RequestGate] = {}

    def get(self, feed: str) -> RequestGate:
        if feed not in self._gates:
            self._gates[feed] = RequestGate(self.min_interval)
        return self._gates[feed]

"""Per-caller rate limiting over a fixed time window"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from lease_generator.models.usage import RateLimitDecision

logger = logging.getLogger(__name__)


@dataclass
class CounterWindow:
    """Request count for one caller inside one window"""
    count: int
    reset_at: float


class CounterStore(ABC):
    """Abstract counter storage, one counter per caller key.

    Implementations must serialize increments so that concurrent requests
    from the same caller are never lost.
    """

    @abstractmethod
    async def increment(self, key: str, window_seconds: float, now: float) -> CounterWindow:
        """Count one request for ``key`` and return the window it landed in."""

    @abstractmethod
    async def evict_expired(self, now: float) -> int:
        """Drop windows that have rolled over. Returns count removed."""


class InMemoryCounterStore(CounterStore):
    """Process-local counters guarded by an asyncio lock"""

    def __init__(self):
        self._windows: dict[str, CounterWindow] = {}
        self._lock = asyncio.Lock()

    async def increment(self, key: str, window_seconds: float, now: float) -> CounterWindow:
        async with self._lock:
            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                window = CounterWindow(count=0, reset_at=now + window_seconds)
                self._windows[key] = window
            window.count += 1
            return CounterWindow(count=window.count, reset_at=window.reset_at)

    async def evict_expired(self, now: float) -> int:
        async with self._lock:
            expired = [key for key, w in self._windows.items() if now >= w.reset_at]
            for key in expired:
                del self._windows[key]
            return len(expired)

    @property
    def active_count(self) -> int:
        return len(self._windows)


class RateLimiter:
    """Allow ``max_requests`` per caller per ``window_seconds``"""

    def __init__(
        self,
        store: CounterStore,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock

    async def check(self, caller_key: str) -> RateLimitDecision:
        """Count this request and decide whether it may proceed"""
        window = await self.store.increment(caller_key, self.window_seconds, self.clock())
        allowed = window.count <= self.max_requests
        decision = RateLimitDecision(
            key=caller_key,
            allowed=allowed,
            remaining=max(0, self.max_requests - window.count),
            limit=self.max_requests,
            reset_at=window.reset_at,
        )
        if not allowed:
            logger.debug(f"Rate limit hit: count={window.count} limit={self.max_requests}")
        return decision

    async def evict_expired(self) -> int:
        return await self.store.evict_expired(self.clock())

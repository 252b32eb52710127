"""In-memory token-bucket rate limiting for tool calls (per process)."""

from __future__ import annotations

import asyncio
import time
from typing import Dict, Mapping, Optional


class TokenBucket:
    def __init__(self, rate: float, capacity: float) -> None:
        self.rate = rate
        self.capacity = capacity
        self.tokens = capacity
        self.timestamp = time.monotonic()
        self._lock = asyncio.Lock()

    async def consume(self, amount: float = 1.0) -> bool:
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.timestamp
            self.timestamp = now
            self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
            if self.tokens >= amount:
                self.tokens -= amount
                return True
            return False


class PerKeyRateLimiter:
    """
    Token buckets keyed by tool name.

    ``per_tool`` overrides the default rate for specific keys; burst capacity
    equals the rate unless given. A rate of zero or less disables limiting.
    """

    def __init__(
        self,
        rate_per_sec: float,
        burst: float | None = None,
        *,
        per_tool: Optional[Mapping[str, float]] = None,
    ) -> None:
        self.rate = rate_per_sec
        self.burst = burst
        self.per_tool: Dict[str, float] = dict(per_tool or {})
        self._buckets: Dict[str, TokenBucket] = {}
        self._lock = asyncio.Lock()

    def rate_for(self, key: str) -> float:
        return self.per_tool.get(key, self.rate)

    async def allow(self, key: str) -> bool:
        rate = self.rate_for(key)
        if rate <= 0:
            return True
        async with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                capacity = self.burst if self.burst is not None else max(rate, 1.0)
                bucket = TokenBucket(rate, capacity)
                self._buckets[key] = bucket
        return await bucket.consume()

"""
Security utilities for the Brief Engine API.

API key authentication with a dev mode bypass, and a per-key rate limiter.
"""

import asyncio
import hmac
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Optional

from fastapi import Depends, Header, HTTPException

from briefing.config import config


class RateLimiter:
    """
    Sliding one-minute window per key.

    hit() checks and records under one lock, so two concurrent requests
    can never both take the last slot.
    """

    def __init__(
        self,
        limit: Optional[int] = None,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    @property
    def limit(self) -> int:
        return config.RATE_LIMIT_PER_MINUTE if self._limit is None else self._limit

    async def hit(self, key: str) -> bool:
        """Record a request for ``key``. Returns False if it is over the limit."""
        if self.limit <= 0:
            return True
        async with self._lock:
            now = self._clock()
            window = self._hits[key]
            while window and window[0] <= now - self.window_seconds:
                window.popleft()
            if len(window) >= self.limit:
                return False
            window.append(now)
            return True

    def reset(self) -> None:
        self._hits.clear()


rate_limiter = RateLimiter()


def presented_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    authorization: Optional[str] = Header(None),
) -> Optional[str]:
    """The X-API-Key header wins over an Authorization bearer token."""
    if x_api_key:
        return x_api_key
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


def is_known_key(candidate: str) -> bool:
    presented = candidate.encode()
    return any(hmac.compare_digest(presented, known.encode()) for known in config.api_keys_list)


async def verify_api_key(api_key: Optional[str] = Depends(presented_key)) -> str:
    """
    Route dependency: 401 without a key, 403 for an unknown one, 429 once the
    key is over its per-minute budget. Open dev setups get the key "dev".
    """
    if not config.auth_required:
        return "dev"

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing API key (send X-API-Key or Authorization: Bearer).",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not is_known_key(api_key):
        raise HTTPException(status_code=403, detail="Invalid API key")

    if not await rate_limiter.hit(api_key):
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Max {rate_limiter.limit} requests per minute."
        )

    return api_key


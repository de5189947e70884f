from __future__ import annotations

import time
from typing import Callable

from medicalink.logging import get_logger
from medicalink.storage.errors import CacheUnavailableError
from medicalink.storage.models import RateLimitWindow
from medicalink.storage.redis_cache import RedisCache

logger = get_logger(__name__)

RATE_LIMIT_PREFIX = "ratelimit:"


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """Fixed-window request counter keyed by caller identifier.

    Windows are aligned to multiples of the window size, so up to
    ``2 * limit`` requests can pass across a window boundary. The counter is
    read, incremented and written back without a lock; two concurrent
    requests may both take the last free slot.
    """

    def __init__(self, cache: RedisCache, *, clock: Callable[[], int] = _now_ms) -> None:
        self.cache = cache
        self._now_ms = clock

    @staticmethod
    def _ttl_seconds(window_size_ms: int) -> int:
        return max(1, window_size_ms // 1000)

    async def check_and_increment(self, identifier: str, limit: int, window_size_ms: int) -> bool:
        """Count one request; True when it is within ``limit`` for the window.

        A non-positive ``limit`` disables limiting. Cache failures admit the
        request.
        """
        if limit <= 0 or window_size_ms <= 0:
            return True
        key = f"{RATE_LIMIT_PREFIX}{identifier}"
        window_start = (self._now_ms() // window_size_ms) * window_size_ms
        ttl = self._ttl_seconds(window_size_ms)
        try:
            current = RateLimitWindow.from_json(await self.cache.get(key))
            if current is None or current.window_start != window_start:
                fresh = RateLimitWindow(count=1, window_start=window_start, window_size=window_size_ms)
                await self.cache.set_with_ttl(key, fresh.to_json(), ttl)
                return True
            if current.count >= limit:
                logger.info(
                    "rate_limit_exceeded",
                    identifier=identifier,
                    limit=limit,
                    window_ms=window_size_ms,
                )
                return False
            current.count += 1
            await self.cache.set_with_ttl(key, current.to_json(), ttl)
            return True
        except CacheUnavailableError as exc:
            logger.warning("rate_limit_check_failed", identifier=identifier, error=str(exc))
            return True

from __future__ import annotations

import math
from datetime import datetime
from typing import Callable, Optional

from medicalink.logging import get_logger
from medicalink.storage.models import BlacklistEntry, utcnow
from medicalink.storage.redis_cache import RedisCache

logger = get_logger(__name__)

BLACKLIST_PREFIX = "blacklist:"


def blacklist_key(token: str) -> str:
    return f"{BLACKLIST_PREFIX}{token}"


class TokenBlacklist:
    """Revoked access tokens, each kept only until the token would expire anyway."""

    def __init__(self, cache: RedisCache, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.cache = cache
        self._now = clock

    async def blacklist(
        self,
        token: str,
        expires_at: datetime,
        reason: Optional[str] = None,
    ) -> bool:
        ttl = math.floor((expires_at - self._now()).total_seconds())
        if ttl <= 0:
            # Already expired tokens are rejected by signature checks
            return True
        entry = BlacklistEntry(token=token, expires_at=expires_at, reason=reason)
        await self.cache.set_with_ttl(blacklist_key(token), entry.to_json(), ttl)
        logger.info("token_blacklisted", reason=reason, ttl_seconds=ttl)
        return True

    async def is_blacklisted(self, token: str) -> bool:
        return await self.cache.exists(blacklist_key(token))

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import urlparse, urlunparse

from medicalink.config import Settings, get_settings
from medicalink.logging import get_logger
from medicalink.service.accounts import StaffAccountService
from medicalink.service.auth import AuthService
from medicalink.service.blacklist import TokenBlacklist
from medicalink.service.guards import RequestGuard
from medicalink.service.rate_limit import RateLimiter
from medicalink.service.sessions import SessionStore
from medicalink.service.tokens import TokenCodec
from medicalink.storage.errors import CacheUnavailableError
from medicalink.storage.memory import MemoryAccountStore
from medicalink.storage.redis_cache import RedisCache

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password in a Redis URL for logging.

    redis://:mypassword@localhost:6379 -> redis://:***@localhost:6379
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
    except ValueError:
        return "***url_parse_error***"
    if not parsed.password:
        return url
    netloc = parsed.hostname or ""
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    netloc = f"{parsed.username or ''}:***@{netloc}"
    return urlunparse(
        (parsed.scheme, netloc, parsed.path, parsed.params, parsed.query, parsed.fragment)
    )


class Runtime:
    """Owns the cache connection and every component built on it.

    One instance per process; the FastAPI lifespan opens it at startup and
    calls ``close`` at shutdown. Components get their collaborators through
    their constructors, never from module globals.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        cache: Optional[RedisCache] = None,
        accounts_store: Optional[MemoryAccountStore] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or get_settings()
        self.clock = clock
        logger.info(
            "runtime_init_started",
            redis_url=_mask_url_password(self.settings.redis_url),
            key_prefix=self.settings.redis_key_prefix,
            test_mode=self.settings.test_mode,
        )
        self.cache = cache or RedisCache(
            self.settings.redis_url,
            key_prefix=self.settings.redis_key_prefix,
            socket_timeout=self.settings.redis_command_timeout,
            connect_timeout=self.settings.redis_connect_timeout,
        )
        self.accounts_store = accounts_store or MemoryAccountStore(
            data_root=None if self.settings.test_mode else self.settings.data_root
        )

        self.sessions = SessionStore(
            self.cache, self.settings.refresh_ttl_seconds, clock=self._utcnow
        )
        self.blacklist = TokenBlacklist(self.cache, clock=self._utcnow)
        self.rate_limiter = RateLimiter(self.cache, clock=self._now_ms)
        self.access_codec = TokenCodec(
            self.settings.auth_secret or "",
            self.settings.access_ttl_seconds,
            kind="access",
            clock=clock,
        )
        self.refresh_codec = TokenCodec(
            self.settings.auth_refresh_secret or "",
            self.settings.refresh_ttl_seconds,
            kind="refresh",
            clock=clock,
        )
        self.auth = AuthService(
            self.accounts_store,
            self.sessions,
            self.blacklist,
            self.access_codec,
            self.refresh_codec,
        )
        self.accounts = StaffAccountService(self.accounts_store)
        self.guard = RequestGuard(self.auth, self.rate_limiter, clock=self._utcnow)
        logger.info("runtime_init_completed")

    def _utcnow(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    async def check_cache(self) -> bool:
        """Ping the cache; False instead of raising when it is unreachable."""
        try:
            return await self.cache.ping()
        except CacheUnavailableError as exc:
            logger.warning("cache_ping_failed", error=str(exc))
            return False

    async def close(self) -> None:
        await self.cache.close()
        logger.info("runtime_closed")

from __future__ import annotations

from typing import Any, Iterable, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from medicalink.logging import get_logger
from medicalink.storage.errors import CacheUnavailableError

logger = get_logger(__name__)


class RedisCache:
    """Thin Redis wrapper shared by sessions, the token blacklist and rate limits.

    Callers pass logical keys (``session:{id}``); the configured prefix is
    added here so the stored key is ``{prefix}session:{id}``. Every command is
    a network call: transport failures surface as ``CacheUnavailableError``,
    while a missing key is reported as ``None``/``False``.
    """

    DEFAULT_COMMAND_TIMEOUT = 5.0
    DEFAULT_CONNECT_TIMEOUT = 60.0
    SCAN_BATCH = 500

    def __init__(
        self,
        redis_url: str,
        *,
        key_prefix: str = "medicalink:",
        socket_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        client: Any = None,
    ):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.client = client or aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=connect_timeout,
            retry_on_timeout=False,
        )

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _strip(self, stored_key: str) -> str:
        if stored_key.startswith(self.key_prefix):
            return stored_key[len(self.key_prefix):]
        return stored_key

    def _unavailable(self, operation: str, key: Optional[str], exc: RedisError) -> CacheUnavailableError:
        logger.error(
            "cache_command_failed",
            operation=operation,
            key=key,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return CacheUnavailableError(operation, exc)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get(self._key(key))
        except RedisError as exc:
            raise self._unavailable("get", key, exc) from exc

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> bool:
        if ttl_seconds < 1:
            # Redis rejects EX 0 / negative; callers must decide what an expired value means
            raise ValueError(f"ttl_seconds must be >= 1, got {ttl_seconds}")
        try:
            await self.client.set(self._key(key), value, ex=int(ttl_seconds))
        except RedisError as exc:
            raise self._unavailable("set", key, exc) from exc
        return True

    async def delete(self, key: str) -> bool:
        """Remove a key. Deleting an absent key is not an error."""
        try:
            await self.client.delete(self._key(key))
        except RedisError as exc:
            raise self._unavailable("delete", key, exc) from exc
        return True

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self.client.exists(self._key(key)))
        except RedisError as exc:
            raise self._unavailable("exists", key, exc) from exc

    async def ttl_remaining(self, key: str) -> Optional[int]:
        """Seconds until expiry, or None when the key is missing or persistent."""
        try:
            ttl = await self.client.ttl(self._key(key))
        except RedisError as exc:
            raise self._unavailable("ttl", key, exc) from exc
        # -2: no such key, -1: no expiry
        if ttl is None or ttl < 0:
            return None
        return int(ttl)

    async def scan_keys(self, prefix: str) -> List[str]:
        """Return every logical key starting with ``prefix`` using SCAN.

        Walks the whole keyspace of the selected database, so cost grows with
        the total number of keys, not the number of matches.
        """
        pattern = f"{self._key(prefix)}*"
        keys: List[str] = []
        try:
            async for stored_key in self.client.scan_iter(match=pattern, count=self.SCAN_BATCH):
                keys.append(self._strip(stored_key))
        except RedisError as exc:
            raise self._unavailable("scan", pattern, exc) from exc
        return keys

    async def delete_many(self, keys: Iterable[str]) -> int:
        stored = [self._key(key) for key in keys]
        if not stored:
            return 0
        try:
            return int(await self.client.delete(*stored))
        except RedisError as exc:
            raise self._unavailable("delete_many", None, exc) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as exc:
            raise self._unavailable("ping", None, exc) from exc

    async def close(self) -> None:
        """Close the connection pool. Call once at process shutdown."""
        await self.client.aclose()

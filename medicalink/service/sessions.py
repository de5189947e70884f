from __future__ import annotations

import math
import secrets
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from medicalink.logging import get_logger
from medicalink.storage.models import Session, utcnow
from medicalink.storage.redis_cache import RedisCache

logger = get_logger(__name__)

SESSION_PREFIX = "session:"


def session_key(session_id: str) -> str:
    return f"{SESSION_PREFIX}{session_id}"


def generate_session_id(now: datetime) -> str:
    """Opaque id: creation time in epoch ms plus a random suffix."""
    return f"{int(now.timestamp() * 1000)}-{secrets.token_hex(6)}"


class SessionStore:
    """Server-side sessions kept in the cache under ``session:{id}``.

    A session lives exactly as long as its refresh window: the cache TTL is
    always the time left until ``expires_at`` and is never extended, so a
    session that is used constantly still ends on schedule.
    """

    def __init__(
        self,
        cache: RedisCache,
        refresh_ttl_seconds: int,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.cache = cache
        self.refresh_ttl_seconds = refresh_ttl_seconds
        self._now = clock

    def _ttl_seconds(self, expires_at: datetime) -> int:
        return math.floor((expires_at - self._now()).total_seconds())

    async def _write(self, session: Session) -> bool:
        ttl = self._ttl_seconds(session.expires_at)
        if ttl < 1:
            await self.cache.delete(session_key(session.id))
            return False
        await self.cache.set_with_ttl(session_key(session.id), session.to_json(), ttl)
        return True

    async def create_session(self, user_id: str, email: str, role: str) -> Session:
        now = self._now()
        session = Session(
            id=generate_session_id(now),
            user_id=user_id,
            email=email,
            role=role,
            created_at=now,
            last_accessed_at=now,
            expires_at=now + timedelta(seconds=self.refresh_ttl_seconds),
            is_active=True,
        )
        await self._write(session)
        logger.info("session_created", session_id=session.id, user_id=user_id)
        return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        raw = await self.cache.get(session_key(session_id))
        return Session.from_json(raw)

    async def touch_session(self, session_id: str) -> bool:
        """Record activity without moving the absolute expiry."""
        session = await self.get_session(session_id)
        if session is None:
            return False
        session.last_accessed_at = self._now()
        return await self._write(session)

    async def delete_session(self, session_id: str) -> bool:
        await self.cache.delete(session_key(session_id))
        return True

    async def delete_all_sessions_for_user(self, user_id: str) -> int:
        """Delete every session owned by ``user_id``.

        Scans the whole session namespace and reads each record, so the cost
        is proportional to all live sessions in the system rather than to this
        user's sessions.
        """
        keys = await self.cache.scan_keys(SESSION_PREFIX)
        matching: List[str] = []
        for key in keys:
            session = Session.from_json(await self.cache.get(key))
            if session is not None and session.user_id == user_id:
                matching.append(key)
        deleted = await self.cache.delete_many(matching)
        logger.info(
            "user_sessions_deleted",
            user_id=user_id,
            scanned=len(keys),
            deleted=deleted,
        )
        return deleted

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional, Tuple

from medicalink.logging import get_logger
from medicalink.service.auth import AuthService
from medicalink.service.errors import AuthenticationError, ForbiddenError, RateLimitedError
from medicalink.service.rate_limit import RateLimiter
from medicalink.service.tokens import AccessClaims
from medicalink.storage.models import utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    limit: int
    window_ms: int


@dataclass(frozen=True)
class RoutePolicy:
    """Checks applied to one route, always in the order rate-limit, authenticate, authorize.

    ``roles`` only takes effect together with ``authenticate``; an empty
    tuple admits any authenticated caller.
    """

    name: str
    rate_limit: Optional[RateLimitRule] = None
    authenticate: bool = False
    roles: Tuple[str, ...] = field(default_factory=tuple)


@dataclass
class AuthContext:
    claims: AccessClaims
    token: str

    @property
    def user_id(self) -> str:
        return self.claims.id

    @property
    def email(self) -> str:
        return self.claims.email

    @property
    def role(self) -> str:
        return self.claims.role

    @property
    def session_id(self) -> Optional[str]:
        return self.claims.session_id


def role_allows(role: str, allowed_roles: Iterable[str]) -> bool:
    allowed = tuple(allowed_roles)
    return not allowed or role in allowed


def extract_bearer(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class RequestGuard:
    """Runs a route's policy before the handler sees the request.

    Cache failures while authenticating propagate so the request fails
    closed; the rate limiter swallows its own cache failures.
    """

    def __init__(
        self,
        auth: AuthService,
        limiter: RateLimiter,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.auth = auth
        self.limiter = limiter
        self._now = clock

    async def check_rate_limit(self, policy: RoutePolicy, client_ip: str) -> None:
        rule = policy.rate_limit
        if rule is None:
            return
        identifier = f"{client_ip}:{policy.name}"
        if not await self.limiter.check_and_increment(identifier, rule.limit, rule.window_ms):
            raise RateLimitedError(rule.limit, rule.window_ms)

    async def authenticate(self, authorization: Optional[str]) -> AuthContext:
        token = extract_bearer(authorization)
        if not token:
            raise AuthenticationError("Token not found")
        if await self.auth.is_token_blacklisted(token):
            logger.info("auth_rejected", reason="token_blacklisted")
            raise AuthenticationError("Token has been invalidated")
        claims = self.auth.verify_access_token(token)
        if claims is None:
            logger.info("auth_rejected", reason="token_invalid")
            raise AuthenticationError("Invalid token")
        if claims.session_id:
            session = await self.auth.get_session(claims.session_id)
            if session is None:
                logger.info("auth_rejected", reason="session_missing", session_id=claims.session_id)
                raise AuthenticationError("Session not found or expired")
            if session.is_expired(self._now()):
                await self.auth.sessions.delete_session(session.id)
                logger.info("auth_rejected", reason="session_expired", session_id=session.id)
                raise AuthenticationError("Session has expired")
            if not await self.auth.sessions.touch_session(session.id):
                logger.info("auth_rejected", reason="session_expired", session_id=session.id)
                raise AuthenticationError("Session has expired")
        return AuthContext(claims=claims, token=token)

    def authorize(self, ctx: AuthContext, roles: Iterable[str]) -> None:
        if not role_allows(ctx.role, roles):
            logger.info("auth_forbidden", user_id=ctx.user_id, role=ctx.role)
            raise ForbiddenError("Insufficient role")

    async def run(
        self,
        policy: RoutePolicy,
        *,
        client_ip: str,
        authorization: Optional[str] = None,
    ) -> Optional[AuthContext]:
        await self.check_rate_limit(policy, client_ip)
        if not policy.authenticate:
            return None
        ctx = await self.authenticate(authorization)
        self.authorize(ctx, policy.roles)
        return ctx

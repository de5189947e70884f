from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

from medicalink.logging import get_logger
from medicalink.service.blacklist import TokenBlacklist
from medicalink.service.errors import AuthenticationError
from medicalink.service.passwords import verify_password
from medicalink.service.sessions import SessionStore
from medicalink.service.tokens import AccessClaims, RefreshClaims, TokenCodec
from medicalink.storage.errors import CacheUnavailableError
from medicalink.storage.models import Session, StaffAccount, StaffProfile

logger = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_REFRESH_TOKEN = "Invalid refresh token"
LOGOUT_REASON = "user logout"


class AccountStore(Protocol):
    def find_by_email(self, email: str) -> Optional[StaffAccount]: ...

    def get_account(
        self, account_id: str, *, include_deleted: bool = False
    ) -> Optional[StaffAccount]: ...


@dataclass
class TokenPair:
    token: str
    refresh_token: str
    token_expires: int  # epoch milliseconds of the access token expiry


@dataclass
class LoginResult:
    token: str
    refresh_token: str
    token_expires: int
    user: StaffProfile
    session_id: str


class AuthService:
    """Credential checks, session lifecycle and token issuance."""

    def __init__(
        self,
        store: AccountStore,
        sessions: SessionStore,
        blacklist: TokenBlacklist,
        access_codec: TokenCodec,
        refresh_codec: TokenCodec,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.blacklist = blacklist
        self.access_codec = access_codec
        self.refresh_codec = refresh_codec
        self.logger = logger

    @staticmethod
    def _normalize_email(email: str) -> str:
        return email.strip().lower()

    async def login(self, email: str, password: str) -> LoginResult:
        account = self.store.find_by_email(self._normalize_email(email))
        # Always run the hash check so unknown emails take as long as wrong passwords
        password_ok = verify_password(password, account.password_hash if account else None)
        if account is None or not password_ok:
            self.logger.info("login_failed", reason="invalid_credentials")
            raise AuthenticationError(INVALID_CREDENTIALS)

        session = await self.sessions.create_session(account.id, account.email, account.role)
        tokens = self.issue_tokens(account.id, account.email, account.role, session.id)
        self.logger.info("login_succeeded", user_id=account.id, session_id=session.id)
        return LoginResult(
            token=tokens.token,
            refresh_token=tokens.refresh_token,
            token_expires=tokens.token_expires,
            user=account.profile(),
            session_id=session.id,
        )

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Mint a new pair for the session named in ``refresh_token``.

        Expired, malformed and foreign-secret tokens are indistinguishable to
        the caller. The identity comes from the session record because the
        refresh token only carries ``sessionId``.
        """
        claims = self.refresh_codec.verify(refresh_token, RefreshClaims)
        if claims is None:
            raise AuthenticationError(INVALID_REFRESH_TOKEN)
        session = await self.sessions.get_session(claims.session_id)
        if session is None or not await self.sessions.touch_session(session.id):
            self.logger.info("refresh_rejected", session_id=claims.session_id, reason="session_missing")
            raise AuthenticationError(INVALID_REFRESH_TOKEN)
        return self.issue_tokens(session.user_id, session.email, session.role, session.id)

    async def logout(
        self,
        session_id: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> None:
        if session_id:
            await self.sessions.delete_session(session_id)
        if not access_token:
            return
        payload = self.access_codec.decode_unverified(access_token)
        exp = payload.get("exp") if payload else None
        if not isinstance(exp, (int, float)):
            self.logger.warning("logout_token_without_expiry", session_id=session_id)
            return
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
        try:
            await self.blacklist.blacklist(access_token, expires_at, LOGOUT_REASON)
        except CacheUnavailableError as exc:
            self.logger.warning("logout_blacklist_failed", session_id=session_id, error=str(exc))

    async def logout_all(self, user_id: str) -> int:
        """End every session of ``user_id``.

        Access tokens already issued for those sessions stay valid until they
        expire unless they are blacklisted separately.
        """
        revoked = await self.sessions.delete_all_sessions_for_user(user_id)
        self.logger.info("logout_all", user_id=user_id, revoked=revoked)
        return revoked

    async def is_token_blacklisted(self, token: str) -> bool:
        return await self.blacklist.is_blacklisted(token)

    async def blacklist_token(
        self, token: str, expires_at: datetime, reason: Optional[str] = None
    ) -> bool:
        return await self.blacklist.blacklist(token, expires_at, reason)

    def verify_access_token(self, token: str) -> Optional[AccessClaims]:
        return self.access_codec.verify(token, AccessClaims)

    async def get_session(self, session_id: str) -> Optional[Session]:
        return await self.sessions.get_session(session_id)

    def issue_tokens(self, user_id: str, email: str, role: str, session_id: str) -> TokenPair:
        access, access_exp = self.access_codec.encode(
            {"id": user_id, "email": email, "role": role, "sessionId": session_id}
        )
        refresh, _ = self.refresh_codec.encode({"sessionId": session_id})
        return TokenPair(token=access, refresh_token=refresh, token_expires=access_exp * 1000)

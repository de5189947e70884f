from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from medicalink.logging import get_logger

logger = get_logger(__name__)

_C = TypeVar("_C", bound="TokenClaims")


class TokenClaims(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    iat: int
    exp: int


class AccessClaims(TokenClaims):
    """Access token payload: ``{id, email, role, sessionId, iat, exp}``."""

    id: str
    email: str
    role: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class RefreshClaims(TokenClaims):
    """Refresh token payload: ``{sessionId, iat, exp}``."""

    session_id: str = Field(alias="sessionId")


def _encode_segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _decode_segment(segment: str) -> bytes:
    padding = "=" * ((4 - len(segment) % 4) % 4)
    return base64.urlsafe_b64decode(segment + padding)


class TokenCodec:
    """HS256 JWT signing and verification for one token kind.

    Access and refresh tokens each get their own codec so that a token signed
    with one secret never verifies under the other.
    """

    ALGORITHM = "HS256"

    def __init__(
        self,
        secret: str,
        ttl_seconds: int,
        *,
        kind: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError(f"{kind} token secret must not be empty")
        self._secret = secret.encode()
        self.ttl_seconds = ttl_seconds
        self.kind = kind
        self._clock = clock

    def _sign(self, signing_input: str) -> str:
        digest = hmac.new(self._secret, signing_input.encode(), hashlib.sha256).digest()
        return _encode_segment(digest)

    def encode(self, claims: dict[str, Any]) -> Tuple[str, int]:
        """Sign ``claims`` with fresh ``iat``/``exp``; returns (token, exp)."""
        now = int(self._clock())
        exp = now + self.ttl_seconds
        payload = {**claims, "iat": now, "exp": exp}
        header = {"alg": self.ALGORITHM, "typ": "JWT"}
        header_enc = _encode_segment(json.dumps(header, separators=(",", ":")).encode())
        payload_enc = _encode_segment(json.dumps(payload, separators=(",", ":")).encode())
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input)}", exp

    def verify(self, token: str, claims_type: Type[_C]) -> Optional[_C]:
        """Check signature and expiry; None on any failure."""
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except (AttributeError, ValueError):
            return None

        # Reject anything but HS256 to prevent algorithm confusion
        try:
            header = json.loads(_decode_segment(header_b64))
        except (ValueError, TypeError):
            logger.warning("jwt_header_decode_failed", kind=self.kind)
            return None
        if not isinstance(header, dict) or header.get("alg") != self.ALGORITHM:
            logger.warning("jwt_invalid_algorithm", kind=self.kind)
            return None

        expected_sig = self._sign(f"{header_b64}.{payload_b64}")
        # compare_digest refuses non-ASCII str, so compare bytes
        if not hmac.compare_digest(
            expected_sig.encode("ascii"), sig_b64.encode("utf-8", "surrogatepass")
        ):
            return None

        claims = self._parse(payload_b64, claims_type)
        if claims is None:
            return None
        if claims.exp <= self._clock():
            return None
        return claims

    def decode_unverified(self, token: str) -> Optional[dict[str, Any]]:
        """Read the payload without checking signature or expiry."""
        try:
            _, payload_b64, _ = token.split(".")
            payload = json.loads(_decode_segment(payload_b64))
        except (AttributeError, ValueError, TypeError):
            return None
        return payload if isinstance(payload, dict) else None

    def _parse(self, payload_b64: str, claims_type: Type[_C]) -> Optional[_C]:
        try:
            return claims_type.model_validate_json(_decode_segment(payload_b64))
        except (ValueError, ValidationError) as exc:
            logger.warning("jwt_payload_decode_failed", kind=self.kind, error=str(exc))
            return None

from __future__ import annotations

import re
import unicodedata
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from medicalink.storage.models import StaffProfile, StaffRole

_VALID_ERROR_CODES = frozenset({
    "unauthorized",
    "forbidden",
    "not_found",
    "rate_limited",
    "validation_error",
    "conflict",
    "service_unavailable",
    "server_error",
})


class ErrorBody(BaseModel):
    """Error envelope body with stable code values."""

    code: str
    message: str
    details: Optional[Any] = None  # object, array, or null

    @field_validator("code")
    @classmethod
    def _validate_error_code(cls, value: str) -> str:
        if value not in _VALID_ERROR_CODES:
            raise ValueError(
                f"Invalid error code '{value}'. Must be one of: {', '.join(sorted(_VALID_ERROR_CODES))}"
            )
        return value


class Envelope(BaseModel):
    status: str = Field(..., pattern="^(ok|error)$")
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))


class CamelModel(BaseModel):
    """Response body serialised with camelCase keys (``refreshToken``)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _normalize_unicode(value: str) -> str:
    # Zero-width and bidi override characters can make two emails look identical
    zero_width = "\u200b\u200c\u200d\ufeff"
    bidi_overrides = {chr(c) for c in range(0x202A, 0x202F)}
    bidi_overrides.update(chr(c) for c in range(0x2066, 0x206A))
    cleaned = "".join(c for c in value if c not in zero_width and c not in bidi_overrides)
    return unicodedata.normalize("NFKC", cleaned)


_EMAIL_LOCAL_PART = re.compile(r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+$")
_EMAIL_DOMAIN_LABEL = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")


def _validate_email(value: str) -> str:
    if not isinstance(value, str):
        raise ValueError("email must be a string")
    normalized = _normalize_unicode(value.strip().lower())
    if len(normalized) > 254:
        raise ValueError("email address too long")
    local, sep, domain = normalized.partition("@")
    if not sep or not local or not domain:
        raise ValueError("invalid email address")
    if len(local) > 64 or not _EMAIL_LOCAL_PART.match(local):
        raise ValueError("invalid email address format")
    domain_parts = domain.split(".")
    if len(domain_parts) < 2:
        raise ValueError("invalid email address format")
    for label in domain_parts:
        if len(label) > 63 or not _EMAIL_DOMAIN_LABEL.match(label):
            raise ValueError("invalid email address format")
    return normalized


def _validate_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("password must be at least 8 characters")
    if len(value) > 128:
        raise ValueError("password must be at most 128 characters")
    return value


class LoginRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def _validate_login_email(cls, value: str) -> str:
        return _validate_email(value)


class TokenRefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1, max_length=4096)


class PasswordResetRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def _validate_password_reset_email(cls, value: str) -> str:
        return _validate_email(value)


class PasswordChangeRequest(CamelModel):
    old_password: str = Field(..., min_length=1, max_length=128)
    new_password: str
    confirm_password: str

    @field_validator("new_password", "confirm_password")
    @classmethod
    def _validate_new_password(cls, value: str) -> str:
        return _validate_password_strength(value)


class AdminResetPasswordRequest(CamelModel):
    new_password: str
    confirm_password: str

    @field_validator("new_password", "confirm_password")
    @classmethod
    def _validate_new_password(cls, value: str) -> str:
        return _validate_password_strength(value)


class CreateStaffAccountRequest(CamelModel):
    full_name: str = Field(..., min_length=1, max_length=100)
    email: str
    password: str
    role: StaffRole

    @field_validator("email")
    @classmethod
    def _validate_create_email(cls, value: str) -> str:
        return _validate_email(value)

    @field_validator("password")
    @classmethod
    def _validate_password(cls, value: str) -> str:
        return _validate_password_strength(value)

    @field_validator("full_name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("full name must not be blank")
        return stripped


class StaffAccountResponse(CamelModel):
    id: str
    email: str
    full_name: str
    role: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_profile(cls, profile: StaffProfile) -> "StaffAccountResponse":
        return cls(
            id=profile.id,
            email=profile.email,
            full_name=profile.full_name,
            role=profile.role,
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )


class ProfileResponse(StaffAccountResponse):
    session_id: Optional[str] = None


class StaffAccountListResponse(CamelModel):
    items: List[StaffAccountResponse]
    total: int


class StaffStatisticsResponse(CamelModel):
    total: int
    by_role: Dict[str, int]
    recently_created: int
    active: int


class LoginResponse(CamelModel):
    token: str
    refresh_token: str
    token_expires: int
    user: StaffAccountResponse


class TokenPairResponse(CamelModel):
    token: str
    refresh_token: str
    token_expires: int


class MessageResponse(CamelModel):
    message: str


class LogoutAllResponse(CamelModel):
    message: str
    revoked: int


class HealthResponse(CamelModel):
    status: str
    cache: str

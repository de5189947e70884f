from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from medicalink.logging import get_logger

logger = get_logger(__name__)

_R = TypeVar("_R", bound="CacheRecord")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheRecord(BaseModel):
    """JSON value stored under a single cache key.

    Field names are camelCase on the wire; unknown or missing fields make the
    whole record invalid rather than partially loaded.
    """

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls: Type[_R], raw: Optional[str]) -> Optional[_R]:
        """Parse a cached value, returning None for missing or corrupt data."""
        if raw is None:
            return None
        try:
            return cls.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning(
                "cache_record_corrupt",
                record_type=cls.__name__,
                errors=exc.error_count(),
            )
            return None


class Session(CacheRecord):
    id: str
    user_id: str
    email: str
    role: str
    created_at: datetime
    last_accessed_at: datetime
    expires_at: datetime
    is_active: bool = True

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.expires_at


class BlacklistEntry(CacheRecord):
    token: str
    expires_at: datetime
    reason: Optional[str] = None


class RateLimitWindow(CacheRecord):
    count: int
    window_start: int
    window_size: int


class StaffRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    DOCTOR = "DOCTOR"


@dataclass
class StaffProfile:
    """Staff account without credential material."""

    id: str
    email: str
    full_name: str
    role: str
    created_at: datetime
    updated_at: datetime


@dataclass
class StaffAccount:
    id: str
    email: str
    full_name: str
    password_hash: str
    role: str = StaffRole.DOCTOR.value
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def profile(self) -> StaffProfile:
        return StaffProfile(
            id=self.id,
            email=self.email,
            full_name=self.full_name,
            role=self.role,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

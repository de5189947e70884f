from __future__ import annotations

from functools import lru_cache
from typing import Optional

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError

from medicalink.logging import get_logger

logger = get_logger(__name__)

_pwd_hasher = PasswordHasher(type=Type.ID)


def hash_password(password: str) -> str:
    return _pwd_hasher.hash(password)


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    # Computed lazily once so unknown-email logins cost the same as real ones
    return _pwd_hasher.hash("medicalink-timing-dummy")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Constant-time check of ``password`` against an argon2 hash.

    When ``password_hash`` is None (no such account) the check still runs
    against a dummy hash so response time does not reveal whether the email
    exists.
    """
    if not password_hash:
        try:
            _pwd_hasher.verify(_dummy_hash(), password)
        except VerificationError:
            pass
        return False
    try:
        return _pwd_hasher.verify(password_hash, password)
    except VerificationError:
        return False
    except InvalidHashError:
        logger.warning("password_hash_invalid")
        return False

from __future__ import annotations

import os
import re
import secrets
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from medicalink.logging import get_logger

logger = get_logger(__name__)

_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 60 * 60 * 24,
    "w": 60 * 60 * 24 * 7,
}
_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h|d|w)?\s*$", re.IGNORECASE)


def parse_duration(value: str | int | float) -> int:
    """Convert "15m" / "7d" style durations (or bare seconds) to whole seconds.

    >>> parse_duration("7d")
    604800
    >>> parse_duration(90)
    90
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = int(value)
    else:
        match = _DURATION_RE.match(str(value))
        if not match:
            raise ValueError(f"invalid duration: {value!r}")
        amount, unit = match.groups()
        seconds = int(float(amount) * _DURATION_UNITS[(unit or "s").lower()])
    if seconds <= 0:
        raise ValueError(f"duration must be positive: {value!r}")
    return seconds


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the staff auth service."""

    redis_url: str = env_field("redis://localhost:6379/0", "REDIS_URL")
    redis_key_prefix: str = env_field(
        "medicalink:",
        "REDIS_KEY_PREFIX",
        description="Prefix prepended to every cache key (session:, blacklist:, ratelimit:)",
    )
    redis_connect_timeout: float = env_field(60.0, "REDIS_CONNECT_TIMEOUT")
    redis_command_timeout: float = env_field(5.0, "REDIS_COMMAND_TIMEOUT")

    auth_secret: str | None = env_field(None, "AUTH_JWT_SECRET")
    auth_expires: str = env_field(
        "15m",
        "AUTH_JWT_TOKEN_EXPIRES_IN",
        description="Access token lifetime, e.g. 15m, 1h, 3600",
    )
    auth_refresh_secret: str | None = env_field(None, "AUTH_REFRESH_SECRET")
    auth_refresh_expires: str = env_field(
        "7d",
        "AUTH_REFRESH_TOKEN_EXPIRES_IN",
        description="Refresh token and session lifetime, e.g. 7d",
    )

    data_root: str = env_field("/srv/medicalink", "DATA_ROOT")
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Allow generated per-process secrets; never enable in production",
    )
    cors_allow_origins: list[str] = env_field([], "CORS_ALLOW_ORIGINS")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("auth_expires", "auth_refresh_expires")
    @classmethod
    def _validate_duration(cls, value: str) -> str:
        parse_duration(value)
        return value

    @model_validator(mode="after")
    def _ensure_secrets(self) -> "Settings":
        if not self.auth_secret or not self.auth_refresh_secret:
            if not self.test_mode:
                raise ValueError(
                    "AUTH_JWT_SECRET and AUTH_REFRESH_SECRET must be set outside TEST_MODE"
                )
            logger.warning(
                "auth_secrets_generated",
                message="Using per-process secrets; tokens will not survive a restart",
            )
            self.auth_secret = self.auth_secret or secrets.token_urlsafe(64)
            self.auth_refresh_secret = self.auth_refresh_secret or secrets.token_urlsafe(64)
        if self.auth_secret == self.auth_refresh_secret:
            raise ValueError("AUTH_JWT_SECRET and AUTH_REFRESH_SECRET must differ")
        return self

    @property
    def access_ttl_seconds(self) -> int:
        return parse_duration(self.auth_expires)

    @property
    def refresh_ttl_seconds(self) -> int:
        return parse_duration(self.auth_refresh_expires)


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None

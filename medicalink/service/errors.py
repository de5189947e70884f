from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for failures the API reports to the caller.

    ``status_code`` picks the HTTP status and ``error_code`` the stable code in
    the error envelope:
    - validation_error (400)
    - unauthorized (401)
    - forbidden (403)
    - not_found (404)
    - conflict (409)
    - rate_limited (429)

    Cache outages are not service errors; they surface as
    ``CacheUnavailableError`` and become 503 at the HTTP edge.
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        detail: Optional[dict] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class BadRequestError(ServiceError):
    """A staff-account rule was broken, e.g. password confirmation mismatch."""
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(ServiceError):
    """Bad credentials, invalid or blacklisted token, or a dead session."""
    status_code = 401
    error_code = "unauthorized"


class ForbiddenError(ServiceError):
    """Authenticated, but the caller's role is not on the route's allow-list."""
    status_code = 403
    error_code = "forbidden"


class NotFoundError(ServiceError):
    status_code = 404
    error_code = "not_found"


class ConflictError(ServiceError):
    status_code = 409
    error_code = "conflict"


class RateLimitedError(ServiceError):
    """The caller used up its window for this route."""
    status_code = 429
    error_code = "rate_limited"

    def __init__(self, limit: int, window_ms: int) -> None:
        super().__init__(
            f"Rate limit exceeded. Maximum {limit} requests per {window_ms}ms",
            detail={"limit": limit, "window_ms": window_ms},
        )
        self.limit = limit
        self.window_ms = window_ms


__all__ = [
    "ServiceError",
    "BadRequestError",
    "AuthenticationError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "RateLimitedError",
]

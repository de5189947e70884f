from __future__ import annotations

from typing import Any, Dict, Optional


class ConstraintViolation(Exception):
    """Raised when a storage-layer uniqueness constraint is violated."""

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class CacheUnavailableError(Exception):
    """The cache could not be reached or did not answer in time.

    Distinct from a missing key, which is reported as ``None``/``False``.
    """

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__(f"cache unavailable during {operation}")
        self.operation = operation
        self.cause = cause


__all__ = ["ConstraintViolation", "CacheUnavailableError"]

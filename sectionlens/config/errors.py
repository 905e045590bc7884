"""
Error Taxonomy - Consistent error codes across the application.

Usage:
    from sectionlens.config.errors import ErrorCode, SectionLensError

    raise SectionLensError(ErrorCode.INVALID_REQUEST, "message must not be blank")
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standardized error codes for machine-readable error responses."""

    # Request errors
    INVALID_REQUEST = "INVALID_REQUEST"

    # Upstream collaborator errors
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    UPSTREAM_THROTTLED = "UPSTREAM_THROTTLED"

    # Query interpretation errors
    LLM_INVALID_RESPONSE = "LLM_INVALID_RESPONSE"

    # Storage errors
    STORAGE_CONNECTION_FAILED = "STORAGE_CONNECTION_FAILED"
    STORAGE_READ_FAILED = "STORAGE_READ_FAILED"

    # Security errors
    SECURITY_RATE_LIMITED = "SECURITY_RATE_LIMITED"

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class SectionLensError(Exception):
    """Base exception with error code support."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to API-friendly dictionary."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


# Domain-specific exceptions for cleaner imports
class InvalidRequestError(SectionLensError):
    """Request rejected before any retrieval (e.g. blank message)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.INVALID_REQUEST, message, details)


class UpstreamUnavailableError(SectionLensError):
    """Embedding, vector search or interpretation collaborator failed."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        throttled: bool = False,
    ) -> None:
        code = ErrorCode.UPSTREAM_THROTTLED if throttled else ErrorCode.UPSTREAM_UNAVAILABLE
        super().__init__(code, message, details)
        self.throttled = throttled


class LLMError(SectionLensError):
    """Model replied, but not with a usable JSON object."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.LLM_INVALID_RESPONSE, message, details)


class StorageError(SectionLensError):
    """Metadata store could not be opened or read."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: ErrorCode = ErrorCode.STORAGE_CONNECTION_FAILED,
    ) -> None:
        super().__init__(code, message, details)

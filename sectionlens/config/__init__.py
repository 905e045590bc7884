"""
Configuration - Application settings and error taxonomy.
"""

from .errors import (
    ErrorCode,
    InvalidRequestError,
    LLMError,
    SectionLensError,
    StorageError,
    UpstreamUnavailableError,
)
from .settings import Settings, get_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Errors
    "ErrorCode",
    "SectionLensError",
    "InvalidRequestError",
    "UpstreamUnavailableError",
    "LLMError",
    "StorageError",
]

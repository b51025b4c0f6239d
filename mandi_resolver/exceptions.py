"""Custom exception hierarchy for mandi-resolver.

Exception Hierarchy:
    MandiResolverError (base)
    ├── ConfigurationError
    ├── InvalidIntentError
    ├── DataProviderError
    │   └── RemoteUnavailableError
    └── StoreUnavailableError

Only ``StoreUnavailableError`` is allowed to escape ``ResolutionEngine.resolve``.
Remote failures are absorbed and turned into "no current data", and an
ambiguous query is the ``NeedsDisambiguation`` result, not an error.
"""
from __future__ import annotations

from typing import Optional, Dict, Any


class MandiResolverError(Exception):
    """Base exception for all mandi-resolver errors.

    Attributes:
        message: Human-readable error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(MandiResolverError):
    """Raised by ``get_settings()`` when an environment value fails validation."""


class InvalidIntentError(MandiResolverError):
    """Raised when an extracted intent cannot be validated.

    Examples:
        - ``market`` is a number or a list
        - ``date`` is not a recognisable calendar date
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.field = field
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, code, details)


class DataProviderError(MandiResolverError):
    """Base class for remote price source errors.

    Attributes:
        provider: Name of the provider that failed
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.provider = provider
        details = details or {}
        if provider:
            details["provider"] = provider
        super().__init__(message, code, details)


class RemoteUnavailableError(DataProviderError):
    """Raised when the remote price API times out, is unreachable or rejects the request.

    ``status`` is the HTTP status code when the API answered at all.
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status = status
        details = details or {}
        if status is not None:
            details["status"] = status
        super().__init__(message, provider=provider, details=details)


class StoreUnavailableError(MandiResolverError):
    """Raised when the local record store cannot be read.

    Every tier depends on the store, so this is the one failure surfaced
    to callers of the resolution engine.
    """
    pass


def get_error_response(error: Exception) -> Dict[str, Any]:
    """Convert any exception to an API error response."""
    if isinstance(error, MandiResolverError):
        return error.to_dict()

    return {
        "error": "InternalError",
        "message": str(error),
        "details": {},
    }

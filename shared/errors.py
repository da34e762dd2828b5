"""
Shared error handling for the tenant admission layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AccessLayerException(Exception):
    """Base exception for admission layer services."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigError(AccessLayerException):
    """Configuration errors. Fatal at startup."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIG_ERROR", message, details)


class ValidationError(AccessLayerException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ExternalServiceError(AccessLayerException):
    """External service errors."""

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)


class CacheError(AccessLayerException):
    """Base class for cache backend failures."""

    def __init__(self, message: str = "Cache error", details: Optional[Dict[str, Any]] = None,
                 code: str = "CACHE_ERROR"):
        super().__init__(code, message, details)


class CacheConnectionError(CacheError):
    """Connect, auth, socket or timeout failure talking to the cache."""

    def __init__(self, message: str = "Cache connection failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="CACHE_CONNECTION_ERROR")


class ProtocolError(CacheError):
    """Malformed reply frame from the cache."""

    def __init__(self, message: str = "Malformed cache reply", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="CACHE_PROTOCOL_ERROR")


class IncompleteReplyError(ProtocolError):
    """Reply frame is truncated; more bytes are needed."""

    def __init__(self, message: str = "Incomplete cache reply", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class ReplyError(CacheError):
    """Error reply (``-ERR ...``) sent by the cache server."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="CACHE_REPLY_ERROR")

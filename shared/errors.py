"""
Shared error handling for the bucketgate limiter.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class LimiterException(Exception):
    """Base exception for limiter components."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(LimiterException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ExternalServiceError(LimiterException):
    """External service errors."""

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None,
                 code: str = "EXTERNAL_SERVICE_ERROR"):
        super().__init__(code, f"{service}: {message}", details)


class StoreConnectionError(ExternalServiceError):
    """The counter store could not be reached or rejected a command.

    Raised for connectivity and setup failures as well as failures of
    individual bucket commands. It is never used to signal a denied acquire.
    """

    def __init__(self, message: str = "Store unavailable", operation: Optional[str] = None,
                 key: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if operation:
            details["operation"] = operation
        if key:
            details["key"] = key
        self.operation = operation
        self.key = key
        super().__init__("store", message, details, code="STORE_CONNECTION_ERROR")

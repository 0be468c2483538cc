"""
Shared error handling for the content cache proxy.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class ProxyException(Exception):
    """Base exception for the proxy service."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(ProxyException):
    """Invalid or incomplete startup configuration."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class ValidationRejection(ProxyException):
    """Request refused before any cache or upstream work.

    Answered with 401 for compatibility with existing clients, although it
    is an input validation failure rather than an authentication one.
    """

    status_code = 401

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class UpstreamError(ProxyException):
    """Upstream content API failures."""

    def __init__(
        self,
        message: str = "Upstream service error",
        status_code: int = 502,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__("UPSTREAM_ERROR", message, details)
        self.status_code = status_code

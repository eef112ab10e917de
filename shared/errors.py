"""
Shared error handling for the IAM Todo service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ServiceException(Exception):
    """Base exception for service errors."""

    status_code = 500

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


class ConfigError(ServiceException):
    """Missing or invalid configuration. Fatal at startup."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIG_ERROR", message, details)


class TrustBundleError(ServiceException):
    """CA bundle missing, unreadable or not valid PEM. Fatal at startup."""

    def __init__(self, message: str = "Trust bundle unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("TRUST_BUNDLE_ERROR", message, details)


class SigningError(ServiceException):
    """IAM auth token could not be generated."""

    def __init__(self, message: str = "Failed to obtain IAM auth token", details: Optional[Dict[str, Any]] = None):
        super().__init__("SIGNING_ERROR", message, details)


class ConnectError(ServiceException):
    """A new physical database connection could not be established."""

    status_code = 503

    def __init__(self, message: str = "Database connection failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONNECT_ERROR", message, details)


class PoolExhaustedError(ServiceException):
    """No connection became available within the acquire timeout."""

    status_code = 503

    def __init__(self, message: str = "Connection pool exhausted", details: Optional[Dict[str, Any]] = None):
        super().__init__("POOL_EXHAUSTED", message, details)


class PoolClosedError(ServiceException):
    """Acquisition attempted after pool shutdown started."""

    status_code = 503

    def __init__(self, message: str = "Connection pool is closed", details: Optional[Dict[str, Any]] = None):
        super().__init__("POOL_CLOSED", message, details)


class QueryError(ServiceException):
    """Statement execution failed."""

    def __init__(self, message: str = "Query failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("QUERY_ERROR", message, details)


class IdleConnectionError(ServiceException):
    """An idle pooled connection terminated unexpectedly."""

    def __init__(self, message: str = "Unexpected error on idle database connection",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("IDLE_CONNECTION_ERROR", message, details)


class SchemaError(ServiceException):
    """Schema bootstrap failed. Fatal at startup."""

    def __init__(self, message: str = "Schema setup failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("SCHEMA_ERROR", message, details)


class ShutdownError(ServiceException):
    """One or more connections could not be closed cleanly."""

    def __init__(self, message: str = "Error closing connection pool", details: Optional[Dict[str, Any]] = None):
        super().__init__("SHUTDOWN_ERROR", message, details)


class ValidationError(ServiceException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


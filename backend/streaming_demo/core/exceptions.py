"""
Custom exception hierarchy for error categorization and HTTP status mapping.

Buffered routes let these propagate to the global handler in main.py, which
turns them into JSON responses. Streaming routes cannot change the status code
once the first chunk is on the wire, so the stream session renders them inline
instead (plain-text marker or an ``error`` event).

Usage:
    from streaming_demo.core.exceptions import ConfigurationMissingError

    raise ConfigurationMissingError(
        "DashScope API key not configured", setting="dashscope_api_key"
    )
"""

from typing import Any


class AppError(Exception):
    """
    Base application error with HTTP status mapping.

    All custom exceptions inherit from this to enable consistent error handling.
    """

    status_code: int = 500
    error_type: str = "internal_error"

    def __init__(self, message: str, **context: Any):
        """
        Initialize error with message and optional context.

        Args:
            message: Human-readable error description
            **context: Additional key-value pairs for logging (e.g., route, model)
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON response and structured logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "status_code": self.status_code,
            **self.context,
        }


# ===== 499: Client went away =====


class ClientDisconnectedError(AppError):
    """
    The client closed the connection while a stream was in flight.

    Never rendered to anyone; it only stops production.
    """

    status_code = 499
    error_type = "client_disconnected"


# ===== 500-level: Server Errors =====


class ConfigurationError(AppError):
    """Application misconfigured (e.g., missing env vars, unreadable assets)."""

    status_code = 500
    error_type = "configuration_error"


class ConfigurationMissingError(ConfigurationError):
    """A required setting (the upstream credential) is empty."""

    error_type = "configuration_missing"


# ===== 502/503: External Service Errors =====


class ExternalServiceError(AppError):
    """
    External service unavailable or returned error.

    Maps to 503 Service Unavailable (third-party problem).
    """

    status_code = 503
    error_type = "external_service_error"

    def __init__(self, message: str, service: str, **context: Any):
        """
        Initialize with service name for easier debugging.

        Args:
            message: Error description
            service: Service identifier (e.g., "dashscope")
            **context: Additional context (e.g., model)
        """
        super().__init__(message, service=service, **context)


class UpstreamFailureError(ExternalServiceError):
    """The streaming completion call failed (network, auth, malformed response)."""

    status_code = 502
    error_type = "upstream_failure"

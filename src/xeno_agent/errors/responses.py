"""Structured error responses for Xeno Agent.

Provides a consistent error payload for lifecycle ``error`` events and
the base exception class used across the voice stack.
"""

from dataclasses import dataclass, field
from typing import Any

from xeno_agent.errors.codes import ErrorCode


@dataclass
class ErrorResponse:
    """Structured error response for consistent error handling.

    This class provides a standardized format for error payloads
    that can be serialized to JSON for event listeners or logging.

    Attributes:
        code: The error code categorizing this error.
        message: Human-readable error message.
        details: Optional additional context about the error.
        operation: Optional name of the outbound operation that failed.
        retryable: Whether the operation might succeed on retry.
    """

    code: ErrorCode
    message: str
    details: dict[str, Any] | None = None
    operation: str | None = None
    retryable: bool = field(init=False)

    def __post_init__(self) -> None:
        """Set retryable flag based on error code."""
        self.retryable = self.code.is_retryable()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization.

        Returns:
            Dictionary with error information.
        """
        result: dict[str, Any] = {
            "error": True,
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.operation:
            result["operation"] = self.operation
        if self.details:
            result["details"] = self.details
        return result

    @classmethod
    def from_exception(cls, exc: Exception, code: ErrorCode | None = None) -> "ErrorResponse":
        """Create ErrorResponse from an exception.

        Args:
            exc: The exception to convert.
            code: Optional error code override.

        Returns:
            ErrorResponse instance.
        """
        if isinstance(exc, XenoError):
            return exc.to_response()

        return cls(
            code=code or ErrorCode.INTERNAL_ERROR,
            message=str(exc),
            details={"exception_type": type(exc).__name__},
        )


class XenoError(Exception):
    """Base exception class for Xeno Agent errors.

    All Xeno-specific exceptions inherit from this class to enable
    consistent error classification and conversion to ErrorResponse.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
        operation: str | None = None,
    ) -> None:
        """Initialize XenoError.

        Args:
            code: The error code categorizing this error.
            message: Human-readable error message.
            details: Optional additional context about the error.
            operation: Optional name of the operation that failed.
        """
        super().__init__(message)
        self.code = code
        self.details = details
        self.operation = operation

    def to_response(self) -> ErrorResponse:
        """Convert to ErrorResponse.

        Returns:
            ErrorResponse representation of this exception.
        """
        return ErrorResponse(
            code=self.code,
            message=str(self),
            details=self.details,
            operation=self.operation,
        )


class ConfigurationError(XenoError):
    """Exception for invalid or missing configuration."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code=ErrorCode.CONFIGURATION_ERROR,
            message=message,
            details=details,
        )

"""Structured error codes for Xeno Agent.

These error codes provide consistent categorization of failures raised by
the voice session controller and the collaborators it calls out to
(recognition, dialogue, synthesis).
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Structured error codes for Xeno Agent.

    Error codes are grouped by category:
    - NETWORK_* / TIMEOUT / RATE_LIMITED / SERVICE_*: Transient collaborator failures
    - AUTHENTICATION_* / QUOTA_*: Permanent collaborator failures
    - HARDWARE_* / INVALID_AUDIO: Audio device and input errors
    - CANCELLED / SESSION_ACTIVE: Session lifecycle errors
    - INTERNAL_* / CONFIGURATION_*: System-level errors
    """

    # Transient collaborator failures
    NETWORK_ERROR = "NETWORK_ERROR"
    """Network failure while reaching a collaborator."""

    TIMEOUT = "TIMEOUT"
    """Collaborator call did not complete within its timeout."""

    RATE_LIMITED = "RATE_LIMITED"
    """Collaborator rejected the call because of rate limiting."""

    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    """Collaborator service is temporarily unavailable."""

    CONNECTION_RESET = "CONNECTION_RESET"
    """Connection to the collaborator was reset mid-call."""

    # Permanent collaborator failures
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    """Credentials were rejected by the collaborator."""

    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    """Usage quota or billing limit reached."""

    # Audio errors
    HARDWARE_UNAVAILABLE = "HARDWARE_UNAVAILABLE"
    """No capture or playback device is available."""

    INVALID_AUDIO = "INVALID_AUDIO"
    """Audio payload could not be interpreted."""

    # Lifecycle errors
    CANCELLED = "CANCELLED"
    """Operation was cancelled because the session ended."""

    SESSION_ACTIVE = "SESSION_ACTIVE"
    """A session is already active on this controller."""

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected internal error (bug or unclassified failure)."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """Invalid or missing configuration."""

    def is_retryable(self) -> bool:
        """Check if this error type is potentially retryable.

        Returns:
            True if the error might succeed on retry.
        """
        return self in {
            ErrorCode.NETWORK_ERROR,
            ErrorCode.TIMEOUT,
            ErrorCode.RATE_LIMITED,
            ErrorCode.SERVICE_UNAVAILABLE,
            ErrorCode.CONNECTION_RESET,
        }

    def is_permanent(self) -> bool:
        """Check if this error can never be resolved by retrying.

        Returns:
            True for credential, quota, hardware and configuration failures.
        """
        return self in {
            ErrorCode.AUTHENTICATION_FAILED,
            ErrorCode.QUOTA_EXCEEDED,
            ErrorCode.HARDWARE_UNAVAILABLE,
            ErrorCode.CONFIGURATION_ERROR,
        }

"""Exception hierarchy for the Xeno voice session stack.

Provides structured error types for:
- Collaborator failures (recognition, dialogue, synthesis)
- Retry exhaustion versus permanent (non-retryable) failures
- Audio hardware availability
- State machine violations

Low-confidence transcripts and session timeouts are not errors; they are
ordinary lifecycle signals handled by the controller.
"""

from __future__ import annotations

from xeno_agent.errors import ErrorCode, XenoError


class VoiceSessionError(XenoError):
    """Base exception for all voice session errors.

    All voice exceptions inherit from this class,
    allowing for catch-all error handling when needed.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        operation: str | None = None,
        recoverable: bool = True,
    ) -> None:
        super().__init__(code=code, message=message, operation=operation)
        self.recoverable = recoverable


# ─────────────────────────────────────────────────────────────────────────────
# Collaborator Errors (raised by recognizer / dialogue / synthesizer adapters)
# ─────────────────────────────────────────────────────────────────────────────


class RecognitionError(VoiceSessionError):
    """Raised by a recognizer when speech-to-text fails.

    The code tells the retry coordinator whether the failure is
    transient (network, timeout, rate limit) or permanent (auth, quota).
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.SERVICE_UNAVAILABLE,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, code=code, operation="recognition")
        self.original_error = original_error


class SynthesisError(VoiceSessionError):
    """Raised by a synthesizer when text-to-speech or playback fails."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.SERVICE_UNAVAILABLE,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, code=code, operation="synthesis")
        self.original_error = original_error


class DialogueError(VoiceSessionError):
    """Raised by a dialogue engine when no reply could be produced."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.SERVICE_UNAVAILABLE,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, code=code, operation="dialogue")
        self.original_error = original_error


# ─────────────────────────────────────────────────────────────────────────────
# Retry Outcomes
# ─────────────────────────────────────────────────────────────────────────────


class CollaboratorError(VoiceSessionError):
    """Aggregated failure of an outbound call after the retry coordinator gave up.

    Carries the last underlying error so supervisors can inspect it.
    """

    def __init__(
        self,
        message: str,
        operation: str,
        code: ErrorCode,
        attempts: int,
        last_error: BaseException | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            operation=operation,
            recoverable=not code.is_permanent(),
        )
        self.attempts = attempts
        self.last_error = last_error
        self.details = {
            "attempts": attempts,
            "last_error": str(last_error) if last_error else None,
            "last_error_type": type(last_error).__name__ if last_error else None,
        }

    @property
    def is_permanent(self) -> bool:
        return self.code.is_permanent()


class RetryExhaustedError(CollaboratorError):
    """Raised when every attempt failed with a retryable error."""

    def __init__(
        self,
        operation: str,
        attempts: int,
        last_error: BaseException | None,
        code: ErrorCode = ErrorCode.SERVICE_UNAVAILABLE,
    ) -> None:
        super().__init__(
            f"{operation} failed after {attempts} attempts: {last_error}",
            operation=operation,
            code=code,
            attempts=attempts,
            last_error=last_error,
        )


class PermanentFailureError(CollaboratorError):
    """Raised immediately for failures that retrying cannot fix."""

    def __init__(
        self,
        operation: str,
        attempts: int,
        last_error: BaseException | None,
        code: ErrorCode,
    ) -> None:
        super().__init__(
            f"{operation} failed with non-retryable error ({code.value}): {last_error}",
            operation=operation,
            code=code,
            attempts=attempts,
            last_error=last_error,
        )


# ─────────────────────────────────────────────────────────────────────────────
# Hardware / State Machine Errors
# ─────────────────────────────────────────────────────────────────────────────


class HardwareUnavailableError(VoiceSessionError):
    """Raised at start-up when no capture or playback device is available.

    Fatal for the controller instance; retrying cannot resolve it.
    """

    def __init__(self, device: str, reason: str = "") -> None:
        message = f"Audio {device} unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            code=ErrorCode.HARDWARE_UNAVAILABLE,
            recoverable=False,
        )
        self.device = device


class SessionActiveError(VoiceSessionError):
    """Raised when a session is requested while another one is active."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Session {session_id} is already active",
            code=ErrorCode.SESSION_ACTIVE,
        )
        self.session_id = session_id


class StateTransitionError(VoiceSessionError):
    """Raised when an invalid state transition is attempted.

    Indicates a programming error or a race the controller failed to serialize.
    """

    def __init__(self, from_state: str, to_state: str) -> None:
        message = f"Invalid state transition: {from_state} → {to_state}"
        super().__init__(message, recoverable=False)
        self.from_state = from_state
        self.to_state = to_state

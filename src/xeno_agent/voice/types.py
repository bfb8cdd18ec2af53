"""Core data types for the voice session controller."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SessionState(Enum):
    """Voice session controller states."""

    IDLE = "idle"  # No session, waiting for a wake trigger
    LISTENING = "listening"  # Session active, accumulating an utterance
    PROCESSING = "processing"  # Utterance handed to recognition/dialogue
    RESPONDING = "responding"  # Synthesized audio playing back
    ERROR = "error"  # Unrecoverable failure, on the way back to IDLE


# Allowed transitions (from_state -> set of allowed to_states)
VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.IDLE: {SessionState.LISTENING},
    SessionState.LISTENING: {
        SessionState.PROCESSING,
        SessionState.RESPONDING,  # Timeout notice
        SessionState.IDLE,
        SessionState.ERROR,
    },
    SessionState.PROCESSING: {
        SessionState.RESPONDING,
        SessionState.LISTENING,
        SessionState.IDLE,
        SessionState.ERROR,
    },
    SessionState.RESPONDING: {
        SessionState.LISTENING,
        SessionState.IDLE,
        SessionState.ERROR,
    },
    SessionState.ERROR: {SessionState.IDLE},
}


class EndReason(str, Enum):
    """Why a session ended."""

    TIMEOUT = "timeout"
    USER_ENDED = "user_ended"  # End-of-session phrase
    USER_REQUEST = "user_request"  # Explicit end_session() call
    RETRIES_EXHAUSTED = "retries_exhausted"
    ERROR = "error"
    DISPOSED = "disposed"


class FinalizeTrigger(str, Enum):
    """Which timer closed an utterance."""

    SILENCE = "silence"
    MAX_DURATION = "max_duration"


class TriggerSource(str, Enum):
    """What moved the controller out of IDLE."""

    WAKE_WORD = "wake_word"
    MANUAL = "manual"


@dataclass(frozen=True)
class AudioFrame:
    """A timestamped chunk of PCM samples with its computed amplitude.

    Attributes:
        data: Raw PCM bytes (int16 little-endian by default)
        timestamp: Capture time in seconds (monotonic clock)
        amplitude: Normalized RMS energy in [0, 1]
        duration_ms: Audio duration covered by this frame
    """

    data: bytes
    timestamp: float
    amplitude: float
    duration_ms: float

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class Transcription:
    """Result of a recognition call."""

    text: str
    confidence: float

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


@dataclass(frozen=True)
class SpeakOptions:
    """Voice and style hints passed to the synthesizer."""

    voice: str = "default"
    style: str = "neutral"
    purpose: str = "response"


@dataclass(frozen=True)
class ConversationTurn:
    """One recognized utterance and the reply it produced."""

    text: str
    confidence: float
    response: str | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class VoiceSession:
    """One continuous conversational episode.

    Owned exclusively by the controller; listeners only ever see
    ``snapshot()`` copies.
    """

    user_id: str
    trigger: TriggerSource = TriggerSource.MANUAL
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)
    last_activity_at: float = field(default_factory=time.time)
    retry_count: int = 0
    state: SessionState = SessionState.LISTENING
    keyword: str | None = None
    persona: str | None = None
    utterance_count: int = 0
    turns: list[ConversationTurn] = field(default_factory=list)
    ended_at: float | None = None
    end_reason: EndReason | None = None

    def touch(self) -> None:
        """Record user activity."""
        self.last_activity_at = time.time()

    def add_turn(self, turn: ConversationTurn) -> None:
        self.turns.append(turn)
        self.touch()

    def snapshot(self) -> dict[str, Any]:
        """Copy of the session attributes safe to hand to listeners."""
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "trigger": self.trigger.value,
            "created_at": self.created_at,
            "last_activity_at": self.last_activity_at,
            "retry_count": self.retry_count,
            "state": self.state.value,
            "keyword": self.keyword,
            "persona": self.persona,
            "utterance_count": self.utterance_count,
            "turn_count": len(self.turns),
            "ended_at": self.ended_at,
            "end_reason": self.end_reason.value if self.end_reason else None,
        }

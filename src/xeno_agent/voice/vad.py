"""Voice Activity Monitor for the Xeno voice session controller.

Classifies pushed audio frames as speech or silence against an amplitude
threshold, with duration hysteresis in both directions:

- ``speech_start`` only after speech-level frames have persisted for
  ``min_speech_duration_ms``
- ``silence_detected`` only after quiet frames have persisted for
  ``silence_hangover_ms``

Single noisy frames therefore never toggle the state. The monitor does not
decide when an utterance is finished; that belongs to the controller and
its timer bank.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import structlog

from xeno_agent.utils.config import SessionConfig, VADConfig

from .types import AudioFrame

logger = structlog.get_logger(__name__)


class SpeechState(Enum):
    """Current speech state."""

    SILENCE = "silence"
    SPEAKING = "speaking"


class ActivityEventType(Enum):
    """Transitions reported to the controller."""

    SPEECH_START = "speech_start"
    SILENCE_DETECTED = "silence_detected"


@dataclass(frozen=True)
class ActivityEvent:
    """A monitor transition.

    For SPEECH_START, ``frames`` holds the onset frames that satisfied the
    hysteresis window (including the triggering frame) so the caller can
    buffer the very beginning of the utterance.
    """

    type: ActivityEventType
    timestamp: float
    frames: tuple[AudioFrame, ...] = ()


@dataclass
class MonitorSettings:
    """Thresholds the monitor runs with."""

    threshold: float = 0.02
    min_speech_duration_ms: float = 300.0
    silence_hangover_ms: float = 150.0
    adaptive_threshold: bool = False
    noise_floor_alpha: float = 0.05
    noise_floor_multiplier: float = 2.2
    initial_noise_floor: float = 0.005

    @classmethod
    def from_config(cls, session: SessionConfig, vad: VADConfig | None = None) -> MonitorSettings:
        vad = vad or VADConfig()
        return cls(
            threshold=session.voice_activity_threshold,
            min_speech_duration_ms=session.min_speech_duration_ms,
            silence_hangover_ms=session.silence_hangover_ms,
            adaptive_threshold=vad.adaptive_threshold,
            noise_floor_alpha=vad.noise_floor_alpha,
            noise_floor_multiplier=vad.noise_floor_multiplier,
            initial_noise_floor=vad.initial_noise_floor,
        )


@dataclass
class VoiceActivityMonitor:
    """Detects speech onset and silence in a stream of frames.

    With ``adaptive_threshold`` enabled the effective threshold rises with
    an exponential moving average of the ambient noise floor, measured only
    while no speech is in progress.
    """

    settings: MonitorSettings = field(default_factory=MonitorSettings)

    _state: SpeechState = field(default=SpeechState.SILENCE, repr=False)
    _onset_frames: list[AudioFrame] = field(default_factory=list, repr=False)
    _onset_ms: float = field(default=0.0, repr=False)
    _quiet_ms: float = field(default=0.0, repr=False)
    _noise_floor: float = field(default=0.0, repr=False)
    _last_is_speech: bool = field(default=False, repr=False)
    _last_amplitude: float = field(default=0.0, repr=False)
    _speech_started_at: float | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self._noise_floor = self.settings.initial_noise_floor

    @property
    def state(self) -> SpeechState:
        """Get current speech state."""
        return self._state

    @property
    def is_speaking(self) -> bool:
        return self._state == SpeechState.SPEAKING

    @property
    def last_frame_is_speech(self) -> bool:
        """Whether the most recent frame was above the threshold."""
        return self._last_is_speech

    @property
    def last_amplitude(self) -> float:
        return self._last_amplitude

    @property
    def noise_floor(self) -> float:
        return self._noise_floor

    @property
    def effective_threshold(self) -> float:
        """Threshold currently applied to frame amplitudes."""
        if not self.settings.adaptive_threshold:
            return self.settings.threshold
        return max(
            self.settings.threshold,
            self._noise_floor * self.settings.noise_floor_multiplier,
        )

    def classify(self, frame: AudioFrame) -> bool:
        """Whether a single frame is speech-level, without changing state."""
        return frame.amplitude >= self.effective_threshold

    def process(self, frame: AudioFrame) -> ActivityEvent | None:
        """Feed one frame and report a transition if one occurred.

        Args:
            frame: Next frame in arrival order

        Returns:
            ActivityEvent on speech_start / silence_detected, else None
        """
        is_speech = self.classify(frame)
        self._last_is_speech = is_speech
        self._last_amplitude = frame.amplitude

        if self._state == SpeechState.SILENCE:
            if not is_speech:
                self._update_noise_floor(frame.amplitude)
                self._onset_frames.clear()
                self._onset_ms = 0.0
                return None

            self._onset_frames.append(frame)
            self._onset_ms += frame.duration_ms
            if self._onset_ms < self.settings.min_speech_duration_ms:
                return None

            onset = tuple(self._onset_frames)
            self._onset_frames.clear()
            self._onset_ms = 0.0
            self._quiet_ms = 0.0
            self._state = SpeechState.SPEAKING
            self._speech_started_at = onset[0].timestamp

            logger.debug(
                "speech_started",
                amplitude=round(frame.amplitude, 4),
                threshold=round(self.effective_threshold, 4),
                onset_frames=len(onset),
            )
            return ActivityEvent(ActivityEventType.SPEECH_START, onset[0].timestamp, onset)

        # SPEAKING
        if is_speech:
            self._quiet_ms = 0.0
            return None

        self._quiet_ms += frame.duration_ms
        if self._quiet_ms < self.settings.silence_hangover_ms:
            return None

        self._state = SpeechState.SILENCE
        self._quiet_ms = 0.0
        speech_ms = (
            (frame.timestamp - self._speech_started_at) * 1000
            if self._speech_started_at is not None
            else 0.0
        )
        self._speech_started_at = None
        logger.debug("silence_detected", speech_ms=round(speech_ms, 1))
        return ActivityEvent(ActivityEventType.SILENCE_DETECTED, frame.timestamp)

    def _update_noise_floor(self, amplitude: float) -> None:
        alpha = self.settings.noise_floor_alpha
        self._noise_floor = self._noise_floor * (1 - alpha) + amplitude * alpha

    def reset(self) -> None:
        """Reset speech state; the learned noise floor is kept."""
        self._state = SpeechState.SILENCE
        self._onset_frames.clear()
        self._onset_ms = 0.0
        self._quiet_ms = 0.0
        self._last_is_speech = False
        self._speech_started_at = None

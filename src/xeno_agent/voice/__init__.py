"""Voice session controller for Xeno Agent.

Keeps a single conversational session alive across turns, from wake
trigger to end of session, on top of injected collaborators.

Components:
    - VoiceSessionController: State machine owning session, timers and buffer
    - VoiceActivityMonitor: Speech onset / silence detection with hysteresis
    - SessionTimerBank: Inactivity, silence and max-duration countdowns
    - AudioBufferAccumulator: Utterance buffer with atomic snapshot-and-clear
    - RetryCoordinator: Backoff and failure classification for outbound calls
    - EventBus: Fire-and-forget lifecycle events

Usage:
    from xeno_agent.voice import VoiceSessionController

    controller = VoiceSessionController(
        recognizer=recognizer,
        synthesizer=synthesizer,
        dialogue=dialogue,
        audio_source=source,
        wake_trigger=trigger,
    )
    async with controller:
        await controller.start_session()
"""

from xeno_agent.voice.audio import PushAudioSource, WaveFileSource, compute_amplitude, frame_from_pcm
from xeno_agent.voice.buffer import AudioBufferAccumulator
from xeno_agent.voice.controller import VoiceSessionController
from xeno_agent.voice.errors import (
    CollaboratorError,
    DialogueError,
    HardwareUnavailableError,
    PermanentFailureError,
    RecognitionError,
    RetryExhaustedError,
    SessionActiveError,
    StateTransitionError,
    SynthesisError,
    VoiceSessionError,
)
from xeno_agent.voice.events import EventBus, EventType, LifecycleEvent
from xeno_agent.voice.interfaces import (
    AudioSource,
    DialogueEngine,
    Recognizer,
    Synthesizer,
    WakeTrigger,
)
from xeno_agent.voice.persona import Persona, PersonaRegistry
from xeno_agent.voice.phrases import is_end_of_session_phrase, match_end_phrase
from xeno_agent.voice.retry import RetryCoordinator, RetryPolicy, classify_error
from xeno_agent.voice.timers import SessionTimerBank, TimerHandle, TimerKind
from xeno_agent.voice.types import (
    AudioFrame,
    ConversationTurn,
    EndReason,
    FinalizeTrigger,
    SessionState,
    SpeakOptions,
    Transcription,
    TriggerSource,
    VoiceSession,
)
from xeno_agent.voice.vad import ActivityEvent, ActivityEventType, VoiceActivityMonitor
from xeno_agent.voice.wake_word import ManualWakeTrigger, OpenWakeWordTrigger

__all__ = [
    "ActivityEvent",
    "ActivityEventType",
    "AudioBufferAccumulator",
    "AudioFrame",
    "AudioSource",
    "CollaboratorError",
    "ConversationTurn",
    "DialogueEngine",
    "DialogueError",
    "EndReason",
    "EventBus",
    "EventType",
    "FinalizeTrigger",
    "HardwareUnavailableError",
    "LifecycleEvent",
    "ManualWakeTrigger",
    "OpenWakeWordTrigger",
    "PermanentFailureError",
    "Persona",
    "PersonaRegistry",
    "PushAudioSource",
    "RecognitionError",
    "Recognizer",
    "RetryCoordinator",
    "RetryExhaustedError",
    "RetryPolicy",
    "SessionActiveError",
    "SessionState",
    "SessionTimerBank",
    "SpeakOptions",
    "StateTransitionError",
    "SynthesisError",
    "Synthesizer",
    "TimerHandle",
    "TimerKind",
    "Transcription",
    "TriggerSource",
    "VoiceActivityMonitor",
    "VoiceSession",
    "VoiceSessionController",
    "VoiceSessionError",
    "WakeTrigger",
    "WaveFileSource",
    "classify_error",
    "compute_amplitude",
    "frame_from_pcm",
    "is_end_of_session_phrase",
    "match_end_phrase",
]

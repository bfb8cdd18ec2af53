"""Voice session controller for Xeno Agent.

State machine that keeps one conversational session alive across turns:
1. Wake trigger (keyword or manual) opens a session in LISTENING
2. Voice activity monitor detects speech onset; frames are buffered
3. Silence or max-duration timer closes the utterance (PROCESSING)
4. Recognition, end-phrase check, dialogue
5. Reply spoken (RESPONDING), then straight back to LISTENING

The session ends on inactivity, an end-of-session phrase, an explicit
end request, exhausted re-prompts or an unrecoverable failure.

Concurrency model:
- Frame pushes, wake detections, timer expiries and outbound-call
  results are posted to a queue drained by a single consumer task
- Every handler runs under ``_state_lock``, so no two transitions overlap
- Recognition, dialogue and synthesis run as cancellable tasks tagged
  with a token; a result whose token is no longer current is dropped
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

import structlog

from xeno_agent.errors import ErrorCode, ErrorResponse
from xeno_agent.utils.config import XenoConfig
from xeno_agent.utils.logging import get_logger

from .buffer import AudioBufferAccumulator
from .errors import (
    CollaboratorError,
    HardwareUnavailableError,
    SessionActiveError,
    StateTransitionError,
    VoiceSessionError,
)
from .events import EventBus, EventType
from .interfaces import AudioSource, DialogueEngine, Recognizer, Synthesizer, WakeTrigger
from .persona import Persona, PersonaRegistry
from .phrases import match_end_phrase
from .retry import RetryCoordinator, classify_error
from .timers import SessionTimerBank, TimerHandle, TimerKind
from .types import (
    VALID_TRANSITIONS,
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
from .vad import ActivityEventType, MonitorSettings, VoiceActivityMonitor

# Speaking style per message purpose
_STYLES = {
    "greeting": "warm",
    "response": "neutral",
    "reprompt": "gentle",
    "guidance": "calm",
    "farewell": "warm",
    "timeout": "calm",
    "error_notice": "calm",
}


# ─────────────────────────────────────────────────────────────────────────────
# Internal events (consumed by the controller loop)
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class _FrameArrived:
    frame: AudioFrame


@dataclass(frozen=True)
class _WakeDetected:
    keyword: str | None


@dataclass(frozen=True)
class _TimerExpired:
    handle: TimerHandle


@dataclass(frozen=True)
class _OutboundDone:
    token: int
    operation: str
    result: Any = None
    error: BaseException | None = None


@dataclass(frozen=True)
class _Shutdown:
    pass


@dataclass
class _OutboundCall:
    token: int
    operation: str
    task: asyncio.Task
    context: dict[str, Any]


# ─────────────────────────────────────────────────────────────────────────────
# Controller
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class VoiceSessionController:
    """Owns the VoiceSession, its timers and its utterance buffer.

    Collaborators are injected; nothing here talks to hardware or cloud
    services directly. Listeners observe the controller only through
    ``events``.
    """

    recognizer: Recognizer
    synthesizer: Synthesizer
    dialogue: DialogueEngine
    audio_source: AudioSource | None = None
    wake_trigger: WakeTrigger | None = None
    config: XenoConfig = field(default_factory=XenoConfig)
    logger: structlog.stdlib.BoundLogger | None = None
    events: EventBus = field(default_factory=EventBus)
    retry: RetryCoordinator | None = None
    personas: PersonaRegistry | None = None
    user_id: str = "default"

    # Components (built in __post_init__)
    _monitor: VoiceActivityMonitor = field(init=False, repr=False)
    _timers: SessionTimerBank = field(init=False, repr=False)
    _buffer: AudioBufferAccumulator = field(init=False, repr=False)

    # State
    _state: SessionState = field(default=SessionState.IDLE, repr=False)
    _session: VoiceSession | None = field(default=None, repr=False)
    _persona: Persona | None = field(default=None, repr=False)
    _recording: bool = field(default=False, repr=False)
    _is_running: bool = field(default=False, repr=False)
    _disposed: bool = field(default=False, repr=False)
    _last_session_end: float | None = field(default=None, repr=False)

    # Event loop plumbing
    _queue: asyncio.Queue | None = field(default=None, repr=False)
    _loop_task: asyncio.Task | None = field(default=None, repr=False)
    _state_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    _pending_frames: int = field(default=0, repr=False)
    _dropped_frames: int = field(default=0, repr=False)
    _call: _OutboundCall | None = field(default=None, repr=False)
    _tokens: itertools.count = field(default_factory=lambda: itertools.count(1), repr=False)
    _background: set[asyncio.Task] = field(default_factory=set, repr=False)
    _unsubscribe: list[Callable[[], None]] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        """Build the monitor, timer bank, buffer and retry coordinator from config."""
        self._base_log = self.logger or get_logger(__name__, component="voice_controller")
        self._log = self._base_log

        self._monitor = VoiceActivityMonitor(
            MonitorSettings.from_config(self.config.session, self.config.vad)
        )
        self._timers = SessionTimerBank.from_config(self.config.session, self._on_timer_expired)
        self._buffer = AudioBufferAccumulator(
            sample_rate=self.config.audio.sample_rate,
            sample_width=self.config.audio.sample_width,
        )
        if self.retry is None:
            self.retry = RetryCoordinator.from_settings(self.config.retry)
        if self.personas is None:
            self.personas = PersonaRegistry.from_entries(self.config.personas)

    # ─────────────────────────────────────────────────────────────────────
    # Properties
    # ─────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        """Get current controller state."""
        return self._state

    @property
    def session(self) -> dict[str, Any] | None:
        """Snapshot of the active session, if any."""
        return self._session.snapshot() if self._session else None

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def dropped_frames(self) -> int:
        return self._dropped_frames

    @property
    def buffered_ms(self) -> float:
        return self._buffer.duration_ms

    @property
    def live_timers(self) -> set[TimerKind]:
        return self._timers.live_kinds

    def session_info(self) -> dict[str, Any]:
        """Current controller and session status for UIs and diagnostics."""
        session = self._session
        return {
            "state": self._state.value,
            "session_id": session.session_id if session else None,
            "user_id": session.user_id if session else None,
            "persona": session.persona if session else None,
            "retry_count": session.retry_count if session else 0,
            "turn_count": len(session.turns) if session else 0,
            "is_speaking": self._monitor.is_speaking,
            "last_amplitude": self._monitor.last_amplitude,
            "noise_floor": self._monitor.noise_floor,
            "buffered_ms": self._buffer.duration_ms,
            "dropped_frames": self._dropped_frames,
            "outbound_call": self._call.operation if self._call else None,
            "retry_status": self.retry.status_report(),
        }

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start consuming events from the audio source and wake trigger.

        Raises:
            HardwareUnavailableError: The audio source reports no device
        """
        if self._disposed:
            raise VoiceSessionError("Controller has been disposed", recoverable=False)
        if self._is_running:
            self._log.warning("controller_already_running")
            return

        if self.audio_source is not None and not self.audio_source.is_available:
            raise HardwareUnavailableError("capture", "audio source reports no device")

        self._queue = asyncio.Queue()
        self._is_running = True
        self._loop_task = asyncio.create_task(self._run_loop(), name="voice-session-loop")

        if self.wake_trigger is not None:
            self.wake_trigger.on_detected(self._on_wake)
        if self.audio_source is not None:
            self._unsubscribe.append(self.audio_source.subscribe(self.push_frame))
            try:
                await self.audio_source.start()
            except Exception:
                await self.dispose()
                raise

        self._log.info(
            "controller_started",
            wake_trigger=type(self.wake_trigger).__name__ if self.wake_trigger else None,
            personas=len(self.personas),
        )

    async def dispose(self) -> None:
        """Tear down any session and stop the controller.

        In-flight collaborator calls are cancelled and any result that
        still arrives is ignored. Safe to call more than once.
        """
        if self._disposed:
            return

        async with self._state_lock:
            self._disposed = True
            self._teardown(EndReason.DISPOSED)

        self._is_running = False
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()

        if self._loop_task is not None:
            self._queue.put_nowait(_Shutdown())
            with contextlib.suppress(asyncio.CancelledError):
                await self._loop_task
            self._loop_task = None

        if self.audio_source is not None:
            await self.audio_source.stop()

        self._log.info("controller_disposed", dropped_frames=self._dropped_frames)

    async def __aenter__(self) -> VoiceSessionController:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.dispose()

    # ─────────────────────────────────────────────────────────────────────
    # Public entry points
    # ─────────────────────────────────────────────────────────────────────

    async def start_session(self, user_id: str | None = None, keyword: str | None = None) -> str:
        """Open a session without a wake word.

        Args:
            user_id: Who the session is for (defaults to ``self.user_id``)
            keyword: Optional keyword used to pick a persona

        Returns:
            The new session id

        Raises:
            SessionActiveError: A session is already active
        """
        self._require_running()
        async with self._state_lock:
            if self._session is not None:
                raise SessionActiveError(self._session.session_id)
            session = self._begin_session(TriggerSource.MANUAL, keyword, user_id or self.user_id)
            return session.session_id

    async def end_session(self, reason: EndReason = EndReason.USER_REQUEST) -> bool:
        """End the active session immediately.

        Idempotent: with no session active this is a no-op.

        Returns:
            True if a session was ended
        """
        async with self._state_lock:
            return self._teardown(reason)

    def push_frame(self, frame: AudioFrame) -> None:
        """Accept a frame from the audio source without blocking.

        Frames are only queued while a session is listening. Beyond
        ``max_pending_frames`` queued frames, new frames are dropped.
        """
        if not self._is_running or self._state != SessionState.LISTENING:
            return
        if self._pending_frames >= self.config.session.max_pending_frames:
            self._dropped_frames += 1
            if self._dropped_frames == 1 or self._dropped_frames % 100 == 0:
                self._log.warning("frames_dropped", total=self._dropped_frames)
            return
        self._pending_frames += 1
        self._queue.put_nowait(_FrameArrived(frame))

    def _on_wake(self, keyword: str | None) -> None:
        self._post(_WakeDetected(keyword))

    def _on_timer_expired(self, handle: TimerHandle) -> None:
        self._post(_TimerExpired(handle))

    def _post(self, event: object) -> None:
        if self._is_running and self._queue is not None:
            self._queue.put_nowait(event)

    def _require_running(self) -> None:
        if not self._is_running:
            raise VoiceSessionError("Controller is not running; call start() first")

    # ─────────────────────────────────────────────────────────────────────
    # Event loop
    # ─────────────────────────────────────────────────────────────────────

    async def _run_loop(self) -> None:
        """Single consumer for every controller event."""
        try:
            while True:
                event = await self._queue.get()
                if isinstance(event, _Shutdown):
                    break
                if isinstance(event, _FrameArrived):
                    self._pending_frames -= 1
                await self._dispatch(event)
        except asyncio.CancelledError:
            self._log.debug("controller_loop_cancelled")
        finally:
            self._log.debug("controller_loop_stopped")

    async def _dispatch(self, event: object) -> None:
        async with self._state_lock:
            if self._disposed:
                return
            try:
                if isinstance(event, _FrameArrived):
                    self._handle_frame(event.frame)
                elif isinstance(event, _WakeDetected):
                    self._handle_wake(event.keyword)
                elif isinstance(event, _TimerExpired):
                    self._handle_timer(event.handle)
                elif isinstance(event, _OutboundDone):
                    self._handle_outbound(event)
            except Exception as e:
                self._log.exception("controller_event_failed", event_type=type(event).__name__)
                self._fail(e, speak_notice=False)

    # ─────────────────────────────────────────────────────────────────────
    # Session start / end
    # ─────────────────────────────────────────────────────────────────────

    def _handle_wake(self, keyword: str | None) -> None:
        if self._session is not None:
            self._log.info("wake_ignored_session_active", keyword=keyword)
            return

        cooldown = self.config.session.wake_word_cooldown_ms / 1000
        if self._last_session_end is not None:
            since_end = asyncio.get_running_loop().time() - self._last_session_end
            if since_end < cooldown:
                self._log.info(
                    "wake_ignored_cooldown",
                    keyword=keyword,
                    since_end_ms=round(since_end * 1000),
                )
                return

        self._begin_session(TriggerSource.WAKE_WORD, keyword, self.user_id)

    def _begin_session(
        self, trigger: TriggerSource, keyword: str | None, user_id: str
    ) -> VoiceSession:
        persona = self.personas.resolve(keyword)
        session = VoiceSession(
            user_id=user_id,
            trigger=trigger,
            keyword=keyword,
            persona=persona.name if persona else None,
            state=self._state,
        )

        self._reset_capture()
        self._session = session
        try:
            self._set_state(SessionState.LISTENING)
        except StateTransitionError:
            self._session = None
            raise
        self._persona = persona
        self._log = self._base_log.bind(session_id=session.session_id)
        self._log.info(
            "session_started",
            trigger=trigger.value,
            keyword=keyword,
            persona=session.persona,
        )
        details = session.snapshot()
        del details["session_id"]
        self.events.emit(EventType.SESSION_STARTED, session.session_id, **details)
        self._timers.start(TimerKind.INACTIVITY)

        greeting = self.config.messages.greeting
        if greeting:
            self._spawn(self._play_greeting(greeting))
        return session

    def _teardown(self, reason: EndReason) -> bool:
        """Release everything the session owns and return to IDLE."""
        session = self._session
        if session is None:
            return False

        self._cancel_outbound()
        self._cancel_background()
        self._reset_capture()

        session.ended_at = time.time()
        session.end_reason = reason
        if self._state != SessionState.IDLE:
            self._set_state(SessionState.IDLE)

        self._log.info(
            "session_ended",
            reason=reason.value,
            turns=len(session.turns),
            utterances=session.utterance_count,
        )
        self.events.emit(
            EventType.SESSION_ENDED,
            session.session_id,
            reason=reason.value,
            session=session.snapshot(),
        )

        self._session = None
        self._persona = None
        self._last_session_end = asyncio.get_running_loop().time()
        self._log = self._base_log
        return True

    def _reset_capture(self) -> None:
        self._timers.cancel_all()
        self._buffer.clear()
        self._monitor.reset()
        self._recording = False

    # ─────────────────────────────────────────────────────────────────────
    # Frames and timers
    # ─────────────────────────────────────────────────────────────────────

    def _handle_frame(self, frame: AudioFrame) -> None:
        if self._session is None or self._state != SessionState.LISTENING:
            return

        activity = self._monitor.process(frame)
        started = activity is not None and activity.type == ActivityEventType.SPEECH_START

        if not self._recording:
            if not started:
                return
            self._recording = True
            self._timers.cancel(TimerKind.INACTIVITY)
            self._timers.start(TimerKind.SILENCE)
            self._timers.start(TimerKind.MAX_DURATION)
            self._buffer.extend(activity.frames)
            self._session.touch()
            self._log.debug("speech_detected", amplitude=round(frame.amplitude, 4))
            self.events.emit(
                EventType.SPEECH_DETECTED,
                self._session.session_id,
                timestamp=activity.timestamp,
                amplitude=frame.amplitude,
            )
            return

        # Pauses stay in the utterance; only the closing quiet tail is trimmed
        is_speech = self._monitor.last_frame_is_speech
        self._buffer.append(frame, speech=is_speech)
        if is_speech:
            self._timers.restart(TimerKind.SILENCE)
            self._session.touch()

    def _handle_timer(self, handle: TimerHandle) -> None:
        if not self._timers.is_current(handle):
            self._log.debug("stale_timer_ignored", kind=handle.kind.value)
            return

        if handle.kind == TimerKind.INACTIVITY:
            if self._session is None or self._state != SessionState.LISTENING:
                return
            self._log.info(
                "session_inactive",
                timeout_ms=self.config.session.session_timeout_ms,
            )
            self._speak_final(self.config.messages.timeout_notice, "timeout", EndReason.TIMEOUT)
            return

        if self._state != SessionState.LISTENING or not self._recording:
            return

        # Max duration wins whenever it has elapsed too
        if handle.kind == TimerKind.MAX_DURATION or self._timers.has_elapsed(
            TimerKind.MAX_DURATION
        ):
            self._finalize(FinalizeTrigger.MAX_DURATION)
        else:
            self._finalize(FinalizeTrigger.SILENCE)

    def _finalize(self, trigger: FinalizeTrigger) -> None:
        session = self._session
        duration_ms = self._buffer.speech_duration_ms
        audio = self._buffer.snapshot_and_clear(trim_trailing_silence=True)
        self._timers.cancel_all()
        self._monitor.reset()
        self._recording = False

        session.utterance_count += 1
        self._set_state(SessionState.PROCESSING)
        self._log.info(
            "utterance_finalized",
            trigger=trigger.value,
            duration_ms=round(duration_ms),
            bytes=len(audio),
        )
        self.events.emit(
            EventType.UTTERANCE_FINALIZED,
            session.session_id,
            trigger=trigger.value,
            duration_ms=duration_ms,
            bytes=len(audio),
        )
        self._launch("recognition", lambda: self.recognizer.transcribe(audio))

    # ─────────────────────────────────────────────────────────────────────
    # Outbound calls
    # ─────────────────────────────────────────────────────────────────────

    def _launch(
        self,
        operation: str,
        factory: Callable[[], Coroutine[Any, Any, Any]],
        **context: Any,
    ) -> None:
        """Start a cancellable collaborator call; its result is posted back."""
        self._cancel_outbound()
        token = next(self._tokens)
        task = asyncio.create_task(
            self._run_outbound(token, operation, factory),
            name=f"outbound-{operation}-{token}",
        )
        self._call = _OutboundCall(token, operation, task, context)

    async def _run_outbound(
        self,
        token: int,
        operation: str,
        factory: Callable[[], Coroutine[Any, Any, Any]],
    ) -> None:
        timeout = self.config.session.call_timeout_ms / 1000

        async def attempt() -> Any:
            async with asyncio.timeout(timeout):
                return await factory()

        try:
            result = await self.retry.execute(operation, attempt)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._post(_OutboundDone(token, operation, error=e))
        else:
            self._post(_OutboundDone(token, operation, result=result))

    def _cancel_outbound(self) -> None:
        call, self._call = self._call, None
        if call is not None and not call.task.done():
            call.task.cancel()
            self._log.debug("outbound_call_cancelled", operation=call.operation, token=call.token)

    def _handle_outbound(self, done: _OutboundDone) -> None:
        call = self._call
        if call is None or call.token != done.token:
            self._log.debug("stale_result_dropped", operation=done.operation, token=done.token)
            return
        self._call = None

        if done.operation == "recognition":
            if done.error is not None:
                self._fail(done.error)
            else:
                self._handle_transcription(done.result)
        elif done.operation == "dialogue":
            self._handle_reply(done.result, done.error, call.context)
        elif done.operation == "synthesis":
            self._handle_playback_done(done.error, call.context)

    # ─────────────────────────────────────────────────────────────────────
    # Recognition → dialogue → response
    # ─────────────────────────────────────────────────────────────────────

    def _handle_transcription(self, result: Transcription) -> None:
        session = self._session
        threshold = self.config.session.confidence_threshold
        if result.is_empty or result.confidence < threshold:
            self._handle_unclear(result)
            return

        text = result.text.strip()
        session.touch()
        self._log.info("speech_transcribed", text=text, confidence=round(result.confidence, 3))
        self.events.emit(
            EventType.SPEECH_TRANSCRIBED,
            session.session_id,
            text=text,
            confidence=result.confidence,
        )

        phrase = match_end_phrase(text, self.config.session.end_phrases)
        if phrase is not None:
            self._log.info("end_phrase_detected", phrase=phrase)
            session.add_turn(ConversationTurn(text=text, confidence=result.confidence))
            self._set_state(SessionState.RESPONDING)
            self._speak_final(self.config.messages.farewell, "farewell", EndReason.USER_ENDED)
            return

        session_id = session.session_id
        self._launch(
            "dialogue",
            lambda: self.dialogue.respond(session_id, text),
            text=text,
            confidence=result.confidence,
        )

    def _handle_unclear(self, result: Transcription) -> None:
        session = self._session
        session.retry_count += 1
        max_retries = self.config.session.max_retries
        self._log.info(
            "utterance_unclear",
            empty=result.is_empty,
            confidence=round(result.confidence, 3),
            retry_count=session.retry_count,
            max_retries=max_retries,
        )

        self._set_state(SessionState.RESPONDING)
        if session.retry_count >= max_retries:
            self._speak_final(
                self.config.messages.guidance, "guidance", EndReason.RETRIES_EXHAUSTED
            )
        else:
            self._speak(self.config.messages.reprompt, "reprompt")

    def _handle_reply(
        self, reply: str | None, error: BaseException | None, context: dict[str, Any]
    ) -> None:
        if error is not None:
            if isinstance(error, CollaboratorError) and error.is_permanent:
                self._fail(error)
                return
            self._log.warning("dialogue_fallback_used", error=str(error))
            reply = None

        if not reply or not reply.strip():
            reply = self.config.messages.dialogue_fallback

        session = self._session
        session.add_turn(
            ConversationTurn(text=context["text"], confidence=context["confidence"], response=reply)
        )
        self.events.emit(EventType.RESPONSE_GENERATED, session.session_id, text=reply)
        self._set_state(SessionState.RESPONDING)
        self._speak(reply, "response")

    def _handle_playback_done(self, error: BaseException | None, context: dict[str, Any]) -> None:
        purpose = context["purpose"]
        end_reason: EndReason | None = context.get("end_reason")

        if error is not None:
            if purpose == "error_notice":
                self._log.warning("error_notice_not_played", error=str(error))
                self._teardown(end_reason or EndReason.ERROR)
                return
            # Ending silently: nothing else can be spoken
            self._fail(error, speak_notice=False, reason=end_reason or EndReason.ERROR)
            return

        if end_reason is not None:
            self._teardown(end_reason)
            return

        if purpose == "response":
            self._session.retry_count = 0
        self._resume_listening()

    def _resume_listening(self) -> None:
        self._reset_capture()
        self._set_state(SessionState.LISTENING)
        self._timers.start(TimerKind.INACTIVITY)

    # ─────────────────────────────────────────────────────────────────────
    # Speaking
    # ─────────────────────────────────────────────────────────────────────

    def _speak_options(self, purpose: str) -> SpeakOptions:
        style = _STYLES.get(purpose, "neutral")
        if self._persona is not None:
            return self._persona.speak_options(purpose=purpose, style=style)
        return SpeakOptions(style=style, purpose=purpose)

    def _speak(self, text: str, purpose: str, end_reason: EndReason | None = None) -> None:
        options = self._speak_options(purpose)
        self._launch(
            "synthesis",
            lambda: self.synthesizer.speak(text, options),
            purpose=purpose,
            end_reason=end_reason,
        )

    def _speak_final(self, message: str, purpose: str, end_reason: EndReason) -> None:
        """Speak a closing message, then end the session with ``end_reason``."""
        self._timers.cancel_all()
        if self._state == SessionState.LISTENING:
            self._set_state(SessionState.RESPONDING)
        if not message:
            self._teardown(end_reason)
            return
        self._speak(message, purpose, end_reason)

    async def _play_greeting(self, text: str) -> None:
        try:
            async with asyncio.timeout(self.config.session.call_timeout_ms / 1000):
                await self.synthesizer.speak(text, self._speak_options("greeting"))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._log.warning("greeting_failed", error=str(e))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _cancel_background(self) -> None:
        for task in list(self._background):
            task.cancel()
        self._background.clear()

    # ─────────────────────────────────────────────────────────────────────
    # Failures and state
    # ─────────────────────────────────────────────────────────────────────

    def _fail(
        self,
        error: BaseException,
        speak_notice: bool = True,
        reason: EndReason = EndReason.ERROR,
    ) -> None:
        """Move to ERROR, report the failure, then return to IDLE.

        A short notice is spoken first unless synthesis is what failed.
        """
        response = ErrorResponse.from_exception(error, classify_error(error))
        self._log.error(
            "session_failed",
            code=response.code.value,
            error=str(error),
            operation=response.operation,
        )

        session = self._session
        self._cancel_outbound()
        self._reset_capture()

        if session is None:
            self.events.emit(EventType.ERROR, None, **response.to_dict())
            return

        if self._state not in (SessionState.IDLE, SessionState.ERROR):
            self._set_state(SessionState.ERROR)
        self.events.emit(EventType.ERROR, session.session_id, **response.to_dict())

        notice = self.config.messages.error_notice
        if speak_notice and notice and response.code != ErrorCode.CANCELLED:
            self._speak(notice, "error_notice", reason)
        else:
            self._teardown(reason)

    def _set_state(self, new_state: SessionState) -> None:
        """Change state after validating the transition.

        Raises:
            StateTransitionError: The transition is not allowed
        """
        old_state = self._state
        if new_state == old_state:
            return

        valid_targets = VALID_TRANSITIONS.get(old_state, set())
        if new_state not in valid_targets:
            self._log.warning(
                "invalid_state_transition",
                from_state=old_state.value,
                to_state=new_state.value,
                valid_targets=[s.value for s in valid_targets],
            )
            raise StateTransitionError(old_state.value, new_state.value)

        self._state = new_state
        if self._session is not None:
            self._session.state = new_state

        self._log.debug("state_changed", old_state=old_state.value, new_state=new_state.value)
        self.events.emit(
            EventType.STATE_CHANGED,
            self._session.session_id if self._session else None,
            **{"from": old_state.value, "to": new_state.value},
        )

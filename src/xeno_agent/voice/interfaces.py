"""Collaborator contracts consumed by the voice session controller.

Concrete recognizers, synthesizers, dialogue engines, wake triggers and
audio sources live outside the controller and only need to satisfy these
protocols.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from .types import AudioFrame, SpeakOptions, Transcription

FrameCallback = Callable[[AudioFrame], None]
WakeCallback = Callable[[str | None], None]


@runtime_checkable
class Recognizer(Protocol):
    """Speech-to-text. May raise transient or permanent errors."""

    async def transcribe(self, audio: bytes) -> Transcription: ...


@runtime_checkable
class Synthesizer(Protocol):
    """Text-to-speech; returns once playback has completed."""

    async def speak(self, text: str, options: SpeakOptions) -> None: ...


@runtime_checkable
class DialogueEngine(Protocol):
    """Produces a reply for a recognized user utterance."""

    async def respond(self, session_id: str, user_text: str) -> str: ...


@runtime_checkable
class WakeTrigger(Protocol):
    """Calls back with the detected keyword (or None) when woken."""

    def on_detected(self, callback: WakeCallback) -> None: ...


@runtime_checkable
class AudioSource(Protocol):
    """Pushes AudioFrames to subscribers; never pulled from."""

    @property
    def is_available(self) -> bool: ...

    def subscribe(self, callback: FrameCallback) -> Callable[[], None]: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

"""Offline collaborators for driving a session without cloud services.

Used by ``xeno-agent simulate`` to replay a WAV file through the real
controller, with transcripts scripted on the command line and replies
printed to the console instead of spoken.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from rich.console import Console

from .types import SpeakOptions, Transcription


@dataclass
class ScriptedRecognizer:
    """Returns pre-scripted transcriptions in order.

    Entries may be Transcription objects, plain strings (full confidence)
    or exceptions to raise. Once the script runs out, empty transcripts
    are returned.
    """

    script: deque[Transcription | str | BaseException] = field(default_factory=deque)
    latency_seconds: float = 0.0
    calls: list[bytes] = field(default_factory=list, repr=False)

    @classmethod
    def from_texts(cls, texts: Iterable[str], **kwargs) -> ScriptedRecognizer:
        return cls(script=deque(texts), **kwargs)

    async def transcribe(self, audio: bytes) -> Transcription:
        self.calls.append(audio)
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)
        if not self.script:
            return Transcription(text="", confidence=0.0)

        item = self.script.popleft()
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, str):
            return Transcription(text=item, confidence=1.0 if item.strip() else 0.0)
        return item


@dataclass
class EchoDialogueEngine:
    """Replies by repeating what it heard."""

    prefix: str = "You said: "
    history: dict[str, list[str]] = field(default_factory=dict, repr=False)

    async def respond(self, session_id: str, user_text: str) -> str:
        self.history.setdefault(session_id, []).append(user_text)
        return f"{self.prefix}{user_text}"


@dataclass
class ConsoleSynthesizer:
    """Prints spoken text with rich instead of playing audio.

    ``words_per_second`` simulates playback time; 0 returns immediately.
    """

    console: Console = field(default_factory=Console)
    words_per_second: float = 0.0
    spoken: list[tuple[str, SpeakOptions]] = field(default_factory=list, repr=False)

    async def speak(self, text: str, options: SpeakOptions) -> None:
        self.spoken.append((text, options))
        style = "bold magenta" if options.purpose == "response" else "cyan"
        self.console.print(f"[{style}]🔊 ({options.voice}/{options.purpose})[/] {text}")
        if self.words_per_second > 0:
            await asyncio.sleep(len(text.split()) / self.words_per_second)

"""Audio frame helpers and push sources.

Provides:
- Amplitude computation (normalized RMS) for int16 PCM
- PushAudioSource: in-memory source fed by a capture callback or a test
- WaveFileSource: replays a WAV file as paced frames for offline runs

Sources push frames to their subscribers; the controller never pulls.
"""

from __future__ import annotations

import asyncio
import time
import wave
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import structlog

from xeno_agent.errors import ErrorCode

from .errors import HardwareUnavailableError, VoiceSessionError
from .interfaces import FrameCallback
from .types import AudioFrame

logger = structlog.get_logger(__name__)

INT16_FULL_SCALE = 32768.0


def compute_amplitude(pcm: bytes) -> float:
    """Normalized RMS energy of int16 little-endian PCM.

    Args:
        pcm: Raw PCM bytes

    Returns:
        RMS divided by full scale, in [0, 1]; 0.0 for empty input
    """
    if len(pcm) < 2:
        return 0.0
    samples = np.frombuffer(pcm[: len(pcm) - len(pcm) % 2], dtype="<i2")
    rms = float(np.sqrt(np.mean(samples.astype(np.float64) ** 2)))
    return min(1.0, rms / INT16_FULL_SCALE)


def frame_from_pcm(
    pcm: bytes,
    timestamp: float | None = None,
    sample_rate: int = 16000,
    sample_width: int = 2,
) -> AudioFrame:
    """Wrap raw PCM into an AudioFrame with its amplitude and duration."""
    samples = len(pcm) // sample_width
    return AudioFrame(
        data=pcm,
        timestamp=time.monotonic() if timestamp is None else timestamp,
        amplitude=compute_amplitude(pcm),
        duration_ms=samples / sample_rate * 1000,
    )


def split_frames(
    pcm: bytes,
    frame_duration_ms: int = 20,
    sample_rate: int = 16000,
    sample_width: int = 2,
    start_time: float = 0.0,
) -> Iterator[AudioFrame]:
    """Cut a PCM stream into consecutive fixed-duration frames.

    A trailing partial frame is emitted as-is.
    """
    frame_bytes = int(sample_rate * frame_duration_ms / 1000) * sample_width
    if frame_bytes <= 0:
        raise ValueError("frame_duration_ms too small for sample rate")
    for offset in range(0, len(pcm), frame_bytes):
        chunk = pcm[offset : offset + frame_bytes]
        seconds = offset / sample_width / sample_rate
        yield frame_from_pcm(chunk, start_time + seconds, sample_rate, sample_width)


def tone(
    duration_ms: float,
    amplitude: float,
    sample_rate: int = 16000,
    frequency: float = 220.0,
) -> bytes:
    """Sine tone as int16 PCM; ``amplitude`` is the RMS level in [0, 1]."""
    count = int(sample_rate * duration_ms / 1000)
    t = np.arange(count) / sample_rate
    peak = min(1.0, amplitude * np.sqrt(2)) * (INT16_FULL_SCALE - 1)
    samples = (peak * np.sin(2 * np.pi * frequency * t)).astype("<i2")
    return samples.tobytes()


@dataclass
class PushAudioSource:
    """Fan-out point for frames produced elsewhere.

    Capture code (or a test) calls ``push()``; subscribers are invoked
    synchronously in subscription order while the source is running.
    """

    available: bool = True
    sample_rate: int = 16000
    sample_width: int = 2

    _subscribers: list[FrameCallback] = field(default_factory=list, repr=False)
    _running: bool = field(default=False, repr=False)

    @property
    def is_available(self) -> bool:
        return self.available

    @property
    def is_running(self) -> bool:
        return self._running

    def subscribe(self, callback: FrameCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def start(self) -> None:
        if not self.available:
            raise HardwareUnavailableError("capture", "source reports no device")
        self._running = True

    async def stop(self) -> None:
        self._running = False

    def push(self, frame: AudioFrame) -> None:
        if not self._running:
            return
        for callback in list(self._subscribers):
            callback(frame)

    def push_pcm(self, pcm: bytes, timestamp: float | None = None) -> AudioFrame:
        frame = frame_from_pcm(pcm, timestamp, self.sample_rate, self.sample_width)
        self.push(frame)
        return frame


@dataclass
class WaveFileSource(PushAudioSource):
    """Replays a mono 16-bit WAV file as a paced frame stream.

    Attributes:
        path: WAV file to replay
        frame_duration_ms: Duration of each pushed frame
        realtime: Sleep one frame duration between pushes (else just yield)
        tail_silence_ms: Silence appended after the file so trailing
            speech can be closed by the silence timer
    """

    path: Path = field(default_factory=Path)
    frame_duration_ms: int = 20
    realtime: bool = True
    tail_silence_ms: int = 0

    _task: asyncio.Task | None = field(default=None, repr=False)
    _finished: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def is_available(self) -> bool:
        return self.available and self.path.is_file()

    def read_pcm(self) -> bytes:
        """Load the file's PCM, validating the format.

        Raises:
            VoiceSessionError: INVALID_AUDIO for non mono 16-bit input
        """
        with wave.open(str(self.path), "rb") as wav:
            if wav.getnchannels() != 1 or wav.getsampwidth() != 2:
                raise VoiceSessionError(
                    f"{self.path} must be mono 16-bit PCM "
                    f"(got {wav.getnchannels()} channels, {wav.getsampwidth() * 8}-bit)",
                    code=ErrorCode.INVALID_AUDIO,
                    recoverable=False,
                )
            self.sample_rate = wav.getframerate()
            pcm = wav.readframes(wav.getnframes())

        if self.tail_silence_ms:
            silence_samples = int(self.sample_rate * self.tail_silence_ms / 1000)
            pcm += b"\x00\x00" * silence_samples
        return pcm

    async def start(self) -> None:
        if not self.is_available:
            raise HardwareUnavailableError("capture", f"cannot open {self.path}")
        pcm = self.read_pcm()
        await super().start()
        self._finished.clear()
        self._task = asyncio.get_running_loop().create_task(self._replay(pcm))
        logger.info(
            "wave_replay_started",
            path=str(self.path),
            sample_rate=self.sample_rate,
            seconds=round(len(pcm) / 2 / self.sample_rate, 2),
        )

    async def stop(self) -> None:
        await super().stop()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def wait_finished(self) -> None:
        await self._finished.wait()

    async def _replay(self, pcm: bytes) -> None:
        delay = self.frame_duration_ms / 1000 if self.realtime else 0
        base = time.monotonic()
        try:
            for frame in split_frames(
                pcm, self.frame_duration_ms, self.sample_rate, self.sample_width, base
            ):
                if not self.is_running:
                    break
                self.push(frame)
                await asyncio.sleep(delay)
        finally:
            self._finished.set()
            logger.info("wave_replay_finished", path=str(self.path))

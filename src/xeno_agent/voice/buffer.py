"""Audio buffer accumulator.

Collects the frames of the utterance being recorded, in arrival order,
including quiet frames inside pauses. The only way to read the audio out
is ``snapshot_and_clear()``, which hands back one contiguous bytes object
and empties the buffer in the same step, so a recognition call never sees
a buffer that is still growing.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .types import AudioFrame


@dataclass
class AudioBufferAccumulator:
    """Append-only frame buffer for one utterance at a time.

    The buffer remembers where its last speech-level frame ended, so the
    quiet tail that closes an utterance can be left out of the snapshot.
    """

    sample_rate: int = 16000
    sample_width: int = 2

    _frames: list[bytes] = field(default_factory=list, repr=False)
    _byte_count: int = field(default=0, repr=False)
    _duration_ms: float = field(default=0.0, repr=False)
    _speech_end: int = field(default=0, repr=False)
    _speech_duration_ms: float = field(default=0.0, repr=False)

    def append(self, frame: AudioFrame, speech: bool = True) -> None:
        self._frames.append(frame.data)
        self._byte_count += len(frame.data)
        self._duration_ms += frame.duration_ms
        if speech:
            self._speech_end = len(self._frames)
            self._speech_duration_ms = self._duration_ms

    def extend(
        self, frames: tuple[AudioFrame, ...] | list[AudioFrame], speech: bool = True
    ) -> None:
        for frame in frames:
            self.append(frame, speech=speech)

    def snapshot_and_clear(self, trim_trailing_silence: bool = False) -> bytes:
        """Return the accumulated audio and reset to empty.

        Args:
            trim_trailing_silence: Drop frames after the last speech frame

        Returns:
            Concatenated PCM bytes (empty if nothing was buffered)
        """
        frames = self._frames[: self._speech_end] if trim_trailing_silence else self._frames
        self.clear()
        return b"".join(frames)

    def clear(self) -> None:
        self._frames = []
        self._byte_count = 0
        self._duration_ms = 0.0
        self._speech_end = 0
        self._speech_duration_ms = 0.0

    @property
    def is_empty(self) -> bool:
        return not self._frames

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def byte_count(self) -> int:
        return self._byte_count

    @property
    def duration_ms(self) -> float:
        """Buffered audio duration, summed from frame durations."""
        return self._duration_ms

    @property
    def speech_duration_ms(self) -> float:
        """Duration up to the end of the last speech frame."""
        return self._speech_duration_ms

    def bytes_to_ms(self, byte_count: int) -> float:
        """Duration of ``byte_count`` bytes of PCM at this buffer's format."""
        samples = byte_count // self.sample_width
        return samples / self.sample_rate * 1000

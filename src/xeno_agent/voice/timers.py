"""Session timer bank.

Owns the three per-session countdowns as named, cancellable handles:

- INACTIVITY: ends the session when the user stays quiet too long
- SILENCE: closes an utterance after silence following speech
- MAX_DURATION: force-closes a runaway utterance

Arming a kind always cancels the live handle of that kind first, so at
most one handle per kind exists. Expiry never acts directly: the bank
calls ``on_expire(handle)`` and the owner decides, checking
``is_current(handle)`` to discard expiries that lost a race with a
cancel or restart.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

import structlog

from xeno_agent.utils.config import SessionConfig

logger = structlog.get_logger(__name__)


class TimerKind(str, Enum):
    """The three session countdowns."""

    INACTIVITY = "inactivity"
    SILENCE = "silence"
    MAX_DURATION = "max_duration"


_handle_ids = itertools.count(1)


@dataclass(eq=False)
class TimerHandle:
    """An armed countdown.

    Attributes:
        kind: Which countdown this is
        duration: Seconds from arming to expiry
        deadline: Event-loop time at which the handle expires
    """

    kind: TimerKind
    duration: float
    deadline: float
    handle_id: int = field(default_factory=lambda: next(_handle_ids))
    cancelled: bool = False
    fired: bool = False
    _task: asyncio.Task | None = field(default=None, repr=False)

    def cancel(self) -> None:
        self.cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def live(self) -> bool:
        return not self.cancelled


@dataclass
class SessionTimerBank:
    """Independent restartable/cancellable countdowns for one controller."""

    durations: dict[TimerKind, float]
    on_expire: Callable[[TimerHandle], None] | None = None

    _handles: dict[TimerKind, TimerHandle] = field(default_factory=dict, repr=False)

    @classmethod
    def from_config(
        cls,
        config: SessionConfig,
        on_expire: Callable[[TimerHandle], None] | None = None,
    ) -> SessionTimerBank:
        return cls(
            durations={
                TimerKind.INACTIVITY: config.session_timeout_ms / 1000,
                TimerKind.SILENCE: config.silence_detection_ms / 1000,
                TimerKind.MAX_DURATION: config.max_speech_duration_ms / 1000,
            },
            on_expire=on_expire,
        )

    def start(self, kind: TimerKind, duration: float | None = None) -> TimerHandle:
        """Arm a countdown, cancelling any live handle of the same kind first.

        Args:
            kind: Countdown to arm
            duration: Seconds; defaults to the configured duration

        Returns:
            The new handle
        """
        self.cancel(kind)

        loop = asyncio.get_running_loop()
        seconds = self.durations[kind] if duration is None else duration
        handle = TimerHandle(kind=kind, duration=seconds, deadline=loop.time() + seconds)
        handle._task = loop.create_task(self._countdown(handle), name=f"timer-{kind.value}")
        self._handles[kind] = handle
        return handle

    restart = start

    def cancel(self, kind: TimerKind) -> bool:
        """Cancel the live handle of ``kind``.

        Returns:
            True if a handle was cancelled
        """
        handle = self._handles.pop(kind, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for kind in list(self._handles):
            self.cancel(kind)

    def get(self, kind: TimerKind) -> TimerHandle | None:
        return self._handles.get(kind)

    def is_live(self, kind: TimerKind) -> bool:
        return kind in self._handles

    def is_current(self, handle: TimerHandle) -> bool:
        """Whether ``handle`` is still the armed handle for its kind."""
        return self._handles.get(handle.kind) is handle and not handle.cancelled

    def has_elapsed(self, kind: TimerKind) -> bool:
        """Whether the live handle of ``kind`` has reached its deadline.

        True even if its expiry callback has not been delivered yet.
        """
        handle = self._handles.get(kind)
        if handle is None:
            return False
        return handle.fired or asyncio.get_running_loop().time() >= handle.deadline

    @property
    def live_kinds(self) -> set[TimerKind]:
        return set(self._handles)

    async def _countdown(self, handle: TimerHandle) -> None:
        try:
            await asyncio.sleep(handle.duration)
        except asyncio.CancelledError:
            return

        if not self.is_current(handle):
            return
        handle.fired = True
        logger.debug("timer_expired", kind=handle.kind.value, handle_id=handle.handle_id)
        if self.on_expire is not None:
            self.on_expire(handle)

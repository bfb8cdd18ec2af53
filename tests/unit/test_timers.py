"""Unit tests for the session timer bank."""

from __future__ import annotations

import asyncio

import pytest

from xeno_agent.utils.config import SessionConfig
from xeno_agent.voice.timers import SessionTimerBank, TimerHandle, TimerKind


def make_bank(fired: list[TimerHandle]) -> SessionTimerBank:
    return SessionTimerBank(
        durations={
            TimerKind.INACTIVITY: 0.1,
            TimerKind.SILENCE: 0.02,
            TimerKind.MAX_DURATION: 0.5,
        },
        on_expire=fired.append,
    )


class TestSessionTimerBank:
    """Tests for SessionTimerBank."""

    def test_from_config_converts_to_seconds(self) -> None:
        """Durations come from the session config in milliseconds."""
        bank = SessionTimerBank.from_config(
            SessionConfig(session_timeout_ms=30000, silence_detection_ms=1500)
        )
        assert bank.durations[TimerKind.INACTIVITY] == 30.0
        assert bank.durations[TimerKind.SILENCE] == 1.5
        assert bank.durations[TimerKind.MAX_DURATION] == 15.0

    @pytest.mark.asyncio
    async def test_expiry_calls_back(self) -> None:
        """An armed timer delivers its handle on expiry."""
        fired: list[TimerHandle] = []
        bank = make_bank(fired)

        handle = bank.start(TimerKind.SILENCE)
        await asyncio.sleep(0.06)

        assert fired == [handle]
        assert handle.fired
        assert bank.has_elapsed(TimerKind.SILENCE)

    @pytest.mark.asyncio
    async def test_cancel_prevents_expiry(self) -> None:
        """A cancelled timer never fires."""
        fired: list[TimerHandle] = []
        bank = make_bank(fired)

        handle = bank.start(TimerKind.SILENCE)
        assert bank.cancel(TimerKind.SILENCE) is True
        await asyncio.sleep(0.05)

        assert fired == []
        assert handle.cancelled
        assert not bank.is_live(TimerKind.SILENCE)
        assert bank.cancel(TimerKind.SILENCE) is False

    @pytest.mark.asyncio
    async def test_restart_replaces_handle(self) -> None:
        """Restarting cancels the old handle, keeping one per kind."""
        fired: list[TimerHandle] = []
        bank = make_bank(fired)

        first = bank.start(TimerKind.INACTIVITY)
        await asyncio.sleep(0.06)
        second = bank.restart(TimerKind.INACTIVITY)
        await asyncio.sleep(0.06)

        assert fired == []
        assert first.cancelled
        assert not bank.is_current(first)
        assert bank.is_current(second)

        await asyncio.sleep(0.1)
        assert fired == [second]

    @pytest.mark.asyncio
    async def test_duration_override(self) -> None:
        """An explicit duration overrides the configured one."""
        bank = make_bank([])
        handle = bank.start(TimerKind.MAX_DURATION, duration=2.0)
        assert handle.duration == 2.0
        bank.cancel_all()

    @pytest.mark.asyncio
    async def test_kinds_are_independent(self) -> None:
        """Each kind keeps its own handle."""
        fired: list[TimerHandle] = []
        bank = make_bank(fired)

        bank.start(TimerKind.INACTIVITY)
        bank.start(TimerKind.MAX_DURATION)
        bank.start(TimerKind.SILENCE)
        assert bank.live_kinds == set(TimerKind)

        bank.cancel(TimerKind.INACTIVITY)
        await asyncio.sleep(0.06)

        assert [h.kind for h in fired] == [TimerKind.SILENCE]
        assert bank.is_live(TimerKind.MAX_DURATION)
        bank.cancel_all()
        assert bank.live_kinds == set()

    @pytest.mark.asyncio
    async def test_has_elapsed_before_delivery(self) -> None:
        """A reached deadline counts as elapsed even before the callback runs."""
        bank = make_bank([])
        handle = bank.start(TimerKind.SILENCE, duration=0.0)

        assert bank.has_elapsed(TimerKind.SILENCE)
        assert not bank.has_elapsed(TimerKind.INACTIVITY)
        handle.cancel()

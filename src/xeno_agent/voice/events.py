"""Lifecycle events emitted by the voice session controller.

Listeners subscribe to an EventBus and receive LifecycleEvent objects.
Emission is fire-and-forget: synchronous listeners run inline but their
exceptions are logged and swallowed, and coroutine listeners are
scheduled as tasks. A slow or failing listener can never stall the
state machine.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class EventType(str, Enum):
    """Lifecycle event names."""

    SESSION_STARTED = "session_started"
    STATE_CHANGED = "state_changed"
    SPEECH_DETECTED = "speech_detected"
    UTTERANCE_FINALIZED = "utterance_finalized"
    SPEECH_TRANSCRIBED = "speech_transcribed"
    RESPONSE_GENERATED = "response_generated"
    SESSION_ENDED = "session_ended"
    ERROR = "error"


@dataclass(frozen=True)
class LifecycleEvent:
    """An observable controller event.

    Attributes:
        type: Event name
        session_id: Session the event belongs to, if any
        data: Event payload (copies, never controller-owned objects)
        timestamp: Wall-clock emission time
    """

    type: EventType
    session_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


Listener = Callable[[LifecycleEvent], None | Awaitable[None]]


@dataclass
class EventBus:
    """Publish/subscribe channel for lifecycle events."""

    _listeners: list[tuple[Listener, frozenset[EventType] | None]] = field(
        default_factory=list, repr=False
    )
    _tasks: set[asyncio.Task] = field(default_factory=set, repr=False)

    def subscribe(self, listener: Listener, *types: EventType) -> Callable[[], None]:
        """Register a listener.

        Args:
            listener: Sync or async callable taking a LifecycleEvent
            *types: Restrict delivery to these event types (all if omitted)

        Returns:
            A function that removes the subscription
        """
        entry = (listener, frozenset(types) if types else None)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def emit(
        self,
        event_type: EventType,
        session_id: str | None = None,
        **data: Any,
    ) -> LifecycleEvent:
        """Deliver an event to every matching listener without blocking."""
        event = LifecycleEvent(type=event_type, session_id=session_id, data=data)
        for listener, types in list(self._listeners):
            if types is not None and event_type not in types:
                continue
            try:
                result = listener(event)
            except Exception as e:
                logger.warning("event_listener_failed", event_type=event_type.value, error=str(e))
                continue
            if inspect.isawaitable(result):
                self._schedule(result, event_type)
        return event

    def _schedule(self, awaitable: Awaitable[None], event_type: EventType) -> None:
        async def runner() -> None:
            try:
                await awaitable
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("event_listener_failed", event_type=event_type.value, error=str(e))

        task = asyncio.get_running_loop().create_task(runner())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def drain(self) -> None:
        """Wait for scheduled async listeners to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

"""
Notification bus for narrative activity.

The engine publishes here after each committed change so a UI can pop
toasts, open the decision modal or refresh a flag panel without the
engine knowing anything about views.

    bus = get_event_bus()
    bus.on(EventType.DRAMA_TRIGGERED, lambda e: toast(e.data["title"]))
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """What the engine announces."""

    # Drama lifecycle
    DRAMA_TRIGGERED = "drama.triggered"
    DRAMA_RESOLVED = "drama.resolved"
    DRAMA_EXPIRED = "drama.expired"
    DRAMA_ESCALATED = "drama.escalated"

    # Press
    INTERVIEW_QUEUED = "interview.queued"
    INTERVIEW_RESOLVED = "interview.resolved"
    PRESS_CONFERENCE_COMPLETE = "interview.conference_complete"

    # Flags
    FLAG_SET = "flag.set"
    FLAG_CLEARED = "flag.cleared"

    # Day / persistence
    DAY_ADVANCED = "day.advanced"
    STATE_RESTORED = "state.restored"


@dataclass
class NarrativeEvent:
    """
    One published notification.

    ``game_date`` is the in-game day (ISO string) the change belongs to;
    ``emitted_at`` is wall-clock time.
    """

    type: EventType
    data: dict = field(default_factory=dict)
    game_date: str = ""
    emitted_at: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"{self.game_date or '-'} {self.type.value} {self.data}"


EventHandler = Callable[[NarrativeEvent], None]


class EventBus:
    """
    Synchronous publish/subscribe.

    Handlers run inside emit(), in the order they subscribed. One that
    raises is logged and the remaining handlers still run.
    """

    def __init__(self, history_limit: int = 100):
        self._handlers: dict[EventType, list[EventHandler]] = {}
        self._recent: deque[NarrativeEvent] = deque(maxlen=history_limit)

    def on(self, event_type: EventType, handler: EventHandler) -> None:
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_type: EventType, game_date: str = "", **data) -> NarrativeEvent:
        """Publish and return the event."""
        event = NarrativeEvent(type=event_type, data=data, game_date=game_date)
        self._recent.append(event)

        for handler in tuple(self._handlers.get(event_type, ())):
            try:
                handler(event)
            except Exception:
                logger.exception("Handler failed for %s", event_type.value)

        return event

    def clear(self) -> None:
        """Drop every subscription and the recent-event log."""
        self._handlers.clear()
        self._recent.clear()

    def get_history(self, event_type: EventType | None = None) -> list[NarrativeEvent]:
        """Recent events, oldest first, optionally of one type."""
        return [e for e in self._recent if event_type is None or e.type is event_type]

    def listener_count(self, event_type: EventType) -> int:
        return len(self._handlers.get(event_type, ()))


_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Process-wide bus, created on first use."""
    global _bus
    if _bus is None:
        _bus = EventBus()
    return _bus


def reset_event_bus() -> None:
    """Forget the process-wide bus so the next call starts fresh."""
    global _bus
    _bus = None

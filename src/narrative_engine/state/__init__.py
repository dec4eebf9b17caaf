"""State models, flags, storage and notifications."""

from .schema import (
    DramaCategory,
    DramaEventInstance,
    DramaEventTemplate,
    DramaSeverity,
    EffectBundle,
    Flag,
    GameSnapshot,
    InterviewContext,
    InterviewSubject,
    InterviewTemplate,
    MatchOutcome,
    NarrativeState,
    PendingInterview,
    PlayerPersonality,
    PlayerSnapshot,
)
from .flags import FlagStore
from .store import JsonNarrativeStore, MemoryNarrativeStore, NarrativeStore
from .event_bus import (
    EventBus,
    EventType,
    NarrativeEvent,
    get_event_bus,
    reset_event_bus,
)

__all__ = [
    # Schema
    "DramaCategory",
    "DramaEventInstance",
    "DramaEventTemplate",
    "DramaSeverity",
    "EffectBundle",
    "Flag",
    "GameSnapshot",
    "InterviewContext",
    "InterviewSubject",
    "InterviewTemplate",
    "MatchOutcome",
    "NarrativeState",
    "PendingInterview",
    "PlayerPersonality",
    "PlayerSnapshot",
    # Flags
    "FlagStore",
    # Store
    "NarrativeStore",
    "JsonNarrativeStore",
    "MemoryNarrativeStore",
    # Event Bus
    "EventBus",
    "EventType",
    "NarrativeEvent",
    "get_event_bus",
    "reset_event_bus",
]

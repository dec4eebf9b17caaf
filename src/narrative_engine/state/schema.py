"""
Pydantic models for narrative engine state.

Three groups live here:
- Content templates (drama events, interviews) loaded from the catalog
- Read-only game snapshots handed in by the calendar each day
- NarrativeState, the single persisted blob owned by the engine

All state serializes to JSON. Older save blobs are migrated on load.
"""

import datetime
import re
from datetime import date
from enum import Enum
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from .schemas.condition import ALWAYS, Condition


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class DramaCategory(str, Enum):
    PLAYER_EGO = "player_ego"
    TEAM_SYNERGY = "team_synergy"
    EXTERNAL_PRESSURE = "external_pressure"
    PRACTICE_BURNOUT = "practice_burnout"
    BREAKTHROUGH = "breakthrough"
    META_RUMORS = "meta_rumors"
    VISA_ARC = "visa_arc"
    COACHING_OVERHAUL = "coaching_overhaul"
    IGL_CRISIS = "igl_crisis"
    TEAM_IDENTITY = "team_identity"


class DramaSeverity(str, Enum):
    MINOR = "minor"  # Toast, auto-resolved at creation
    MAJOR = "major"  # Blocking modal, player picks a choice


class DramaEventStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    ESCALATED = "escalated"
    EXPIRED = "expired"


class PlayerSelector(str, Enum):
    """Who a drama event is about."""
    RANDOM = "random"
    LOWEST_MORALE = "lowest_morale"
    STAR_PLAYER = "star_player"
    IMPORT_PLAYER = "import_player"


class InterviewContext(str, Enum):
    PRE_MATCH = "PRE_MATCH"
    POST_MATCH = "POST_MATCH"
    CRISIS = "CRISIS"
    KICKOFF = "KICKOFF"


class InterviewSubject(str, Enum):
    MANAGER = "manager"
    PLAYER = "player"
    COACH = "coach"


class InterviewTone(str, Enum):
    CONFIDENT = "CONFIDENT"
    RESPECTFUL = "RESPECTFUL"
    TRASH_TALK = "TRASH_TALK"
    DEFLECTIVE = "DEFLECTIVE"
    BLAME_SELF = "BLAME_SELF"
    BLAME_TEAM = "BLAME_TEAM"
    HUMBLE = "HUMBLE"
    AGGRESSIVE = "AGGRESSIVE"


class PlayerPersonality(str, Enum):
    FAME_SEEKER = "FAME_SEEKER"
    BIG_STAGE = "BIG_STAGE"
    TEAM_FIRST = "TEAM_FIRST"
    INTROVERT = "INTROVERT"
    STABLE = "STABLE"


class MatchOutcome(str, Enum):
    WIN = "win"
    LOSS = "loss"
    ANY = "any"


def generate_id() -> str:
    return str(uuid4())[:8]


# -----------------------------------------------------------------------------
# Flags
# -----------------------------------------------------------------------------

class Flag(BaseModel):
    """
    Time-scoped narrative marker.

    Active while ``today < expires_date``; a null expiry never lapses.
    """
    key: str
    set_date: date
    expires_date: date | None = None

    def is_active(self, today: date) -> bool:
        return self.expires_date is None or today < self.expires_date


class FlagDuration(BaseModel):
    """A flag to set, with its lifetime in days (None or 0 = permanent)."""
    key: str
    duration_days: int | None = None


class FlagLogEntry(BaseModel):
    """Append-only record of a flag mutation."""
    date: datetime.date
    key: str
    action: Literal["set", "cleared"]
    expires_date: date | None = None


# -----------------------------------------------------------------------------
# Effects
# -----------------------------------------------------------------------------

class EffectBundle(BaseModel):
    """
    Deltas and flag mutations applied when an event or answer resolves.

    Loaded permissively; the EffectApplier validates references before
    anything is mutated.
    """
    morale: int | None = None
    fanbase: int | None = None
    hype: int | None = None
    sponsor_trust: int | None = None
    chemistry: int | None = None
    rivalry_delta: int | None = None
    drama_chance: int | None = None
    target_player_ids: list[str] = Field(default_factory=list)
    sets_flags: list[FlagDuration] = Field(default_factory=list)
    clears_flags: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return self == EffectBundle()


# -----------------------------------------------------------------------------
# Drama templates and instances
# -----------------------------------------------------------------------------

class DramaChoice(BaseModel):
    id: str
    text: str
    outcome_text: str = ""
    effects: EffectBundle = Field(default_factory=EffectBundle)
    requires_flags: list[str] = Field(default_factory=list)
    triggers_event_id: str | None = None  # follow-up template fired on pick


class DramaEventTemplate(BaseModel):
    """Immutable catalog entry for a drama beat."""
    id: str
    category: DramaCategory
    severity: DramaSeverity
    title: str
    description: str = ""
    condition: Condition = ALWAYS
    probability: float = Field(ge=0, le=100)
    requires_active_flag: str | None = None
    effects: EffectBundle = Field(default_factory=EffectBundle)
    choices: list[DramaChoice] = Field(default_factory=list)
    expiry_days: int | None = None
    escalation_effects: EffectBundle | None = None
    escalation_template_id: str | None = None
    player_selector: PlayerSelector | None = None
    once_per_season: bool = False

    @model_validator(mode="after")
    def _major_needs_choices(self):
        if self.severity == DramaSeverity.MAJOR and not 2 <= len(self.choices) <= 3:
            raise ValueError(
                f"major template {self.id} needs 2-3 choices, has {len(self.choices)}"
            )
        return self

    def choice(self, choice_id: str) -> DramaChoice | None:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None


class DramaEventInstance(BaseModel):
    """
    A live occurrence of a drama template.

    Leaves ``active`` exactly once, then moves to the history log.
    """
    id: str = Field(default_factory=generate_id)
    template_id: str
    category: DramaCategory
    severity: DramaSeverity
    status: DramaEventStatus = DramaEventStatus.ACTIVE
    triggered_date: date
    resolved_date: date | None = None
    chosen_option_id: str | None = None
    affected_player_ids: list[str] = Field(default_factory=list)
    applied_effects: EffectBundle | None = None
    title: str = ""
    description: str = ""
    outcome_text: str | None = None
    chain_depth: int = 0
    parent_event_id: str | None = None
    escalated_to_event_id: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == DramaEventStatus.ACTIVE

    def age(self, today: date) -> int:
        return (today - self.triggered_date).days


# -----------------------------------------------------------------------------
# Interviews
# -----------------------------------------------------------------------------

class InterviewOption(BaseModel):
    tone: InterviewTone
    label: str
    quote: str = ""
    effects: EffectBundle = Field(default_factory=EffectBundle)
    personality_weights: dict[PlayerPersonality, float] = Field(default_factory=dict)
    requires_flags: list[str] = Field(default_factory=list)


class InterviewTemplate(BaseModel):
    id: str
    context: InterviewContext
    subject_type: InterviewSubject = InterviewSubject.MANAGER
    condition: Condition = ALWAYS
    requires_active_flag: str | None = None
    match_outcome: MatchOutcome | None = None
    prompt: str
    options: list[InterviewOption]

    @field_validator("options")
    @classmethod
    def _exactly_three(cls, options: list[InterviewOption]) -> list[InterviewOption]:
        if len(options) != 3:
            raise ValueError(f"interview templates need exactly 3 options, got {len(options)}")
        return options


class PendingInterview(BaseModel):
    """A template bound to a concrete subject, waiting for an answer."""
    id: str = Field(default_factory=generate_id)
    template_id: str
    context: InterviewContext
    subject_type: InterviewSubject
    subject_id: str | None = None
    opponent_team_id: str | None = None
    match_id: str | None = None
    prompt: str
    options: list[InterviewOption]
    chosen_index: int | None = None  # set once answered


class InterviewHistoryEntry(BaseModel):
    date: datetime.date
    template_id: str
    context: InterviewContext
    chosen_tone: InterviewTone
    effects: EffectBundle
    subject_id: str | None = None
    opponent_team_id: str | None = None


# -----------------------------------------------------------------------------
# Game snapshot (read-only input)
# -----------------------------------------------------------------------------

def _check_segment(value: str) -> str:
    """Ids are embedded in flag keys as one underscore-free segment."""
    if not value or "_" in value:
        raise ValueError(f"id {value!r} must be non-empty and contain no '_'")
    return value


class PlayerSnapshot(BaseModel):
    id: str
    name: str
    personality: PlayerPersonality = PlayerPersonality.STABLE
    morale: int = 50
    rating: int = 50
    region: str | None = None
    is_import: bool = False

    @field_validator("id")
    @classmethod
    def _segment_id(cls, value: str) -> str:
        return _check_segment(value)


class MatchResult(BaseModel):
    match_id: str | None = None
    opponent_team_id: str | None = None
    outcome: MatchOutcome
    is_upset: bool = False
    is_tournament: bool = True


class TournamentContext(BaseModel):
    name: str = ""
    is_playoff: bool = False
    bracket: Literal["upper", "lower"] | None = None
    elimination_risk: bool = False
    grand_final: bool = False
    opponent_dropped_from_upper: bool = False


class GameSnapshot(BaseModel):
    """
    Read-only view of the world for one day.

    ``streak`` is signed: positive counts consecutive wins, negative losses.
    """
    current_date: date
    team_id: str = "player-team"
    team_name: str = "Your Team"
    players: list[PlayerSnapshot] = Field(default_factory=list)
    streak: int = 0
    last_match: MatchResult | None = None
    opponent_team_id: str | None = None
    opponent_name: str | None = None
    rivalries: dict[str, int] = Field(default_factory=dict)
    tournament: TournamentContext | None = None
    sponsor_trust: int = 50
    fanbase: int = 50
    hype: int = 50
    chemistry: int = 50
    season_day: int = 0

    @field_validator("team_id", "opponent_team_id")
    @classmethod
    def _segment_ids(cls, value: str | None) -> str | None:
        return value if value is None else _check_segment(value)

    @property
    def win_streak(self) -> int:
        return max(self.streak, 0)

    @property
    def loss_streak(self) -> int:
        return max(-self.streak, 0)

    @property
    def is_playoff(self) -> bool:
        return self.tournament is not None and self.tournament.is_playoff

    def player(self, player_id: str) -> PlayerSnapshot | None:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def min_morale(self) -> int | None:
        if not self.players:
            return None
        return min(p.morale for p in self.players)


# -----------------------------------------------------------------------------
# Persisted engine state
# -----------------------------------------------------------------------------

# camelCase keys written by older saves
_LEGACY_KEYS = {
    "activeFlags": "flags",
    "activeEvents": "active_events",
    "eventHistory": "event_history",
    "lastEventByCategory": "last_event_by_category",
    "interviewHistory": "interview_history",
    "pendingInterviews": "interview_queue",
}

_LIST_FIELDS = ("active_events", "event_history", "interview_queue", "interview_history", "flag_log")

_CAMEL = re.compile(r"(?<=[a-z0-9])([A-Z])")


def _snake_keys(value):
    """Recursively rename camelCase dict keys (``templateId`` -> ``template_id``)."""
    if isinstance(value, list):
        return [_snake_keys(v) for v in value]
    if not isinstance(value, dict):
        return value
    return {
        (_CAMEL.sub(r"_\1", k).lower() if isinstance(k, str) and _CAMEL.search(k) else k): _snake_keys(v)
        for k, v in value.items()
    }


def _migrate_entry(entry):
    if not isinstance(entry, dict):
        return entry
    entry = _snake_keys(entry)
    # Old saves kept a list of raw effects rather than one bundle
    if isinstance(entry.get("applied_effects"), list):
        entry["applied_effects"] = None
    if entry.get("status") == "pending":
        entry["status"] = DramaEventStatus.ACTIVE.value
    return entry


class NarrativeState(BaseModel):
    """
    Everything the engine persists, serialized together as one blob.

    ``cooldowns`` maps a category to the date it last fired. Fields absent
    from older saves default to empty.
    """
    flags: dict[str, Flag] = Field(default_factory=dict)
    cooldowns: dict[DramaCategory, date] = Field(default_factory=dict)
    active_events: list[DramaEventInstance] = Field(default_factory=list)
    event_history: list[DramaEventInstance] = Field(default_factory=list)
    interview_queue: list[PendingInterview] = Field(default_factory=list)
    interview_history: list[InterviewHistoryEntry] = Field(default_factory=list)
    flag_log: list[FlagLogEntry] = Field(default_factory=list)
    toasts: list[str] = Field(default_factory=list)  # ids of undismissed minor events
    total_events_triggered: int = 0
    total_major_decisions: int = 0

    @model_validator(mode="before")
    @classmethod
    def _migrate_legacy(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for old, new in _LEGACY_KEYS.items():
            if old in data and new not in data:
                data[new] = data.pop(old)
            else:
                data.pop(old, None)

        for name in _LIST_FIELDS:
            entries = data.get(name)
            if isinstance(entries, list):
                data[name] = [_migrate_entry(e) for e in entries]

        # last_event_by_category backfills cooldowns, valid keys only
        by_category = data.pop("last_event_by_category", None) or {}
        cooldowns = dict(data.get("cooldowns") or {})
        valid = {c.value for c in DramaCategory}
        for category, fired in by_category.items():
            if category in valid and fired and category not in cooldowns:
                cooldowns[category] = fired
        data["cooldowns"] = {k: v for k, v in cooldowns.items() if v and k in valid}

        flags = {}
        for key, value in (data.get("flags") or {}).items():
            if isinstance(value, str):
                # Old format stored only the set date
                flags[key] = {"key": key, "set_date": value, "expires_date": None}
            elif isinstance(value, dict):
                flags[key] = {
                    "key": value.get("key", key),
                    "set_date": value.get("set_date", value.get("setDate")),
                    "expires_date": value.get("expires_date", value.get("expiresDate")),
                }
        data["flags"] = flags
        return data

    @property
    def last_event_by_category(self) -> dict[DramaCategory, date]:
        return dict(self.cooldowns)

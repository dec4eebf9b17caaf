"""
Narrative engine facade.

The single entry point the host game talks to. Sequences the systems and
guarantees that every call is all-or-nothing:

    working = copy(state) → systems mutate working → commit on success

If a system raises (malformed effects, resolving something that is not
pending) the working copy is dropped, the error is logged, and the call
degrades to "nothing happened". Narrative content is supplementary, so
nothing here is allowed to halt the host's day loop.

Usage:
    engine = NarrativeEngine(rng=random.Random(7))

    day = engine.advance_narrative_state(snapshot)
    for toast in day.drama_toasts: ...
    event = engine.get_active_major_event()
    engine.resolve_drama_event(event.id, "back_the_igl")

    queue = engine.open_press_conference(snapshot, InterviewContext.POST_MATCH,
                                         match_outcome=MatchOutcome.LOSS)
    engine.resolve_interview(queue[0], 1, snapshot.current_date)
    engine.shift_interview_queue()
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Iterator

from pydantic import ValidationError

from .catalog import TemplateCatalog
from .config import EngineConfig, default_config
from .errors import NarrativeError
from .rng import RandomSource, create_rng
from .state.event_bus import EventBus, EventType, get_event_bus
from .state.flags import FlagStore
from .state.schema import (
    DramaEventInstance,
    DramaSeverity,
    GameSnapshot,
    InterviewContext,
    InterviewHistoryEntry,
    InterviewSubject,
    MatchOutcome,
    NarrativeState,
    PendingInterview,
)
from .systems import history
from .systems.conditions import ConditionEvaluator
from .systems.drama import DramaDayResult, DramaResolution, DramaScheduler
from .systems.effects import AppliedEffects, EffectApplier
from .systems.interviews import InterviewSelector

if TYPE_CHECKING:
    from .state.store import NarrativeStore

logger = logging.getLogger(__name__)


# ─── Results ────────────────────────────────────────────────

@dataclass
class DayResult:
    """What one day of narrative produced, for the UI layer."""
    drama_toasts: list[DramaEventInstance] = field(default_factory=list)
    drama_modal_queue: list[DramaEventInstance] = field(default_factory=list)
    expired: list[DramaEventInstance] = field(default_factory=list)
    escalated: list[DramaEventInstance] = field(default_factory=list)
    effects: list[AppliedEffects] = field(default_factory=list)
    snapshot: GameSnapshot | None = None

    @classmethod
    def from_drama(cls, drama: DramaDayResult) -> "DayResult":
        return cls(
            drama_toasts=list(drama.toasts),
            drama_modal_queue=list(drama.modal_queue),
            expired=list(drama.expired),
            escalated=list(drama.escalated),
            effects=list(drama.effects),
            snapshot=drama.snapshot,
        )

    @property
    def has_events(self) -> bool:
        return bool(self.drama_toasts or self.drama_modal_queue)


@dataclass
class InterviewResult:
    entry: InterviewHistoryEntry
    effects: AppliedEffects
    chained_events: list[DramaEventInstance] = field(default_factory=list)


@dataclass
class QueueShift:
    """
    Result of consuming the head of the interview queue.

    ``conference_complete`` is set when the queue just emptied. A finished
    pre-match conference asks the host to advance the day; a finished
    post-match one may queue a crisis follow-up.
    """
    removed: PendingInterview | None = None
    conference_complete: bool = False
    advance_day: bool = False
    follow_up: list[PendingInterview] = field(default_factory=list)


class NarrativeEngine:
    """
    Owns NarrativeState and coordinates the drama and interview systems.

    Args:
        catalog: Templates to run with. Loads the packaged catalog if omitted.
        rng: Random source for every roll. Seed it for reproducible runs.
        config: Engine tuning. Defaults to DEFAULT_CONFIG.
        state: Existing state to resume from.
        bus: Event bus for UI notifications. Defaults to the global bus.
    """

    def __init__(
        self,
        catalog: TemplateCatalog | None = None,
        rng: RandomSource | None = None,
        config: EngineConfig | None = None,
        state: NarrativeState | None = None,
        bus: EventBus | None = None,
    ):
        self.config = config or default_config()
        self._rng = rng or create_rng()
        self.catalog = catalog if catalog is not None else TemplateCatalog.load()

        evaluator = ConditionEvaluator()
        applier = EffectApplier(self._rng)
        self.drama = DramaScheduler(self.catalog.drama, self._rng, self.config, evaluator, applier)
        self.interviews = InterviewSelector(self.catalog.interviews, self._rng, self.config, evaluator, applier)

        self._state = state or NarrativeState()
        self._bus = bus or get_event_bus()
        self._snapshot: GameSnapshot | None = None
        self._conference_context: InterviewContext | None = None

    # ─── State access ───────────────────────────────────────

    @property
    def state(self) -> NarrativeState:
        """A detached copy of the current state."""
        return self._state.model_copy(deep=True)

    @property
    def snapshot(self) -> GameSnapshot | None:
        """Last snapshot seen, with any effects applied since folded in."""
        return self._snapshot

    @contextmanager
    def _working_copy(self) -> Iterator[NarrativeState]:
        working = self._state.model_copy(deep=True)
        yield working
        history.trim(working, self.config["history_limit"])
        self._state = working

    # ─── Day advance ────────────────────────────────────────

    def advance_narrative_state(self, snapshot: GameSnapshot) -> DayResult:
        """Run one day: age active events, then roll new ones."""
        try:
            with self._working_copy() as state:
                drama = self.drama.advance_day(state, snapshot)
        except NarrativeError as e:
            logger.error("Narrative day %s skipped: %s", snapshot.current_date, e)
            self._snapshot = snapshot
            return DayResult(snapshot=snapshot)

        self._snapshot = drama.snapshot
        self._publish_drama(drama, snapshot.current_date)
        self._bus.emit(
            EventType.DAY_ADVANCED,
            game_date=snapshot.current_date.isoformat(),
            toasts=len(drama.toasts),
            modals=len(drama.modal_queue),
        )
        return DayResult.from_drama(drama)

    # ─── Drama UI surface ───────────────────────────────────

    def get_active_drama_toasts(self) -> list[DramaEventInstance]:
        by_id = {e.id: e for e in self._state.event_history}
        return [by_id[t].model_copy() for t in self._state.toasts if t in by_id]

    def dismiss_toast(self, event_id: str) -> bool:
        if event_id not in self._state.toasts:
            return False
        self._state.toasts = [t for t in self._state.toasts if t != event_id]
        return True

    def get_active_major_event(self) -> DramaEventInstance | None:
        """Oldest active major event, which blocks progression until resolved."""
        for event in self._state.active_events:
            if event.severity == DramaSeverity.MAJOR:
                return event.model_copy()
        return None

    def get_active_events(self) -> list[DramaEventInstance]:
        return [e.model_copy() for e in self._state.active_events]

    def resolve_drama_event(
        self,
        event_id: str,
        choice_id: str,
        snapshot: GameSnapshot | None = None,
    ) -> DramaResolution | None:
        """
        Resolve a major event with the player's choice.

        Resolving an unknown or already-resolved event is a logged no-op
        and returns None.
        """
        snapshot = snapshot or self._snapshot
        if snapshot is None:
            logger.error("Cannot resolve drama %s before any snapshot was seen", event_id)
            return None

        try:
            with self._working_copy() as state:
                resolution = self.drama.resolve(state, snapshot, event_id, choice_id)
        except NarrativeError as e:
            logger.error("Drama resolution rejected: %s", e)
            return None

        self._snapshot = resolution.effects.apply_to(snapshot)
        if resolution.chained is not None:
            self._snapshot = resolution.chained.snapshot or self._snapshot
        today = snapshot.current_date.isoformat()
        self._bus.emit(
            EventType.DRAMA_RESOLVED,
            game_date=today,
            event_id=resolution.event.id,
            template_id=resolution.event.template_id,
            choice_id=choice_id,
        )
        self._publish_flags(resolution.effects, today)
        if resolution.chained is not None:
            self._publish_drama(resolution.chained, snapshot.current_date)
        return resolution

    # ─── Interviews ─────────────────────────────────────────

    def open_press_conference(
        self,
        snapshot: GameSnapshot,
        context: InterviewContext,
        subject_type: InterviewSubject = InterviewSubject.MANAGER,
        match_outcome: MatchOutcome | None = None,
        subject_id: str | None = None,
        count: int | None = None,
        opponent_team_id: str | None = None,
        match_id: str | None = None,
        force: bool = False,
    ) -> list[PendingInterview]:
        """
        Queue a press conference. Returns the queued interviews (may be empty).

        Unless ``force`` is set, the conference is only held when the
        context's press odds roll true.
        """
        self._snapshot = snapshot
        if self._state.interview_queue:
            logger.error("Press conference requested while %d interviews are pending",
                         len(self._state.interview_queue))
            return []

        flags = FlagStore(self._state.flags, self._state.flag_log)
        if not force and not self.interviews.should_hold_press(context, snapshot, flags):
            logger.debug("No %s press conference today", context.value)
            return []

        queue = self.interviews.select(
            self._state,
            snapshot,
            context,
            subject_type=subject_type,
            match_outcome=match_outcome,
            subject_id=subject_id,
            count=count or self.config["press_conference_size"],
            opponent_team_id=opponent_team_id,
            match_id=match_id,
        )
        if not queue:
            return []

        self._state.interview_queue = list(queue)
        self._conference_context = context
        for pending in queue:
            self._bus.emit(
                EventType.INTERVIEW_QUEUED,
                game_date=snapshot.current_date.isoformat(),
                template_id=pending.template_id,
                subject_id=pending.subject_id,
            )
        return [p.model_copy() for p in queue]

    def get_pending_interview_queue(self) -> list[PendingInterview]:
        return [p.model_copy() for p in self._state.interview_queue]

    def resolve_interview(
        self,
        pending: PendingInterview,
        option_index: int,
        current_date: date,
    ) -> InterviewResult | None:
        """
        Apply an answer. A drama_chance hit force-triggers one drama event.

        Returns None (and changes nothing) if the interview is not pending,
        was already answered, or its effects are malformed.
        """
        if self._snapshot is None:
            logger.error("Cannot resolve interview %s before any snapshot was seen", pending.template_id)
            return None
        snapshot = self._snapshot.model_copy(update={"current_date": current_date})

        chained: DramaDayResult | None = None
        try:
            with self._working_copy() as state:
                entry, applied = self.interviews.resolve(state, snapshot, pending, option_index, current_date)
                if applied.chain_requested:
                    chained = self.drama.force_trigger(state, applied.apply_to(snapshot), chain_depth=1)
        except NarrativeError as e:
            logger.error("Interview answer rejected: %s", e)
            return None

        self._snapshot = applied.apply_to(snapshot)
        if chained is not None and chained.snapshot is not None:
            self._snapshot = chained.snapshot

        today = current_date.isoformat()
        self._bus.emit(
            EventType.INTERVIEW_RESOLVED,
            game_date=today,
            template_id=entry.template_id,
            tone=entry.chosen_tone.value,
        )
        self._publish_flags(applied, today)
        result = InterviewResult(entry=entry, effects=applied)
        if chained is not None:
            self._publish_drama(chained, current_date)
            result.chained_events = chained.new_events
        return result

    def shift_interview_queue(self) -> QueueShift:
        """Drop the head of the queue; decide follow-ups once it empties."""
        if not self._state.interview_queue:
            return QueueShift()

        removed = self._state.interview_queue[0]
        self._state.interview_queue = self._state.interview_queue[1:]
        if removed.chosen_index is None:
            logger.debug("Interview %s skipped without an answer", removed.template_id)

        shift = QueueShift(removed=removed)
        if self._state.interview_queue:
            return shift

        shift.conference_complete = True
        context = self._conference_context or removed.context
        self._conference_context = None
        today = self._snapshot.current_date.isoformat() if self._snapshot else ""

        if context == InterviewContext.PRE_MATCH:
            shift.advance_day = True
        elif context == InterviewContext.POST_MATCH and self._snapshot is not None:
            shift.follow_up = self._crisis_follow_up(self._snapshot)

        self._bus.emit(
            EventType.PRESS_CONFERENCE_COMPLETE,
            game_date=today,
            context=context.value,
            advance_day=shift.advance_day,
            follow_up=len(shift.follow_up),
        )
        return shift

    def _crisis_follow_up(self, snapshot: GameSnapshot) -> list[PendingInterview]:
        flags = FlagStore(self._state.flags, self._state.flag_log)
        if not self.interviews.crisis_warranted(snapshot, flags):
            return []
        return self.open_press_conference(snapshot, InterviewContext.CRISIS, count=1, force=True)

    def had_trash_talk_before(self, opponent_team_id: str) -> bool:
        return history.had_trash_talk_before(self._state, opponent_team_id)

    # ─── History and flags ──────────────────────────────────

    def get_event_history(self, limit: int = 20) -> list[DramaEventInstance]:
        return [e.model_copy() for e in history.recent_events(self._state, limit)]

    def get_interview_history(self, limit: int = 20) -> list[InterviewHistoryEntry]:
        return [e.model_copy() for e in history.recent_interviews(self._state, limit)]

    def is_flag_active(self, key: str, today: date) -> bool:
        return FlagStore(self._state.flags).is_active(key, today)

    def flag_ever_set(self, key: str) -> bool:
        return FlagStore(self._state.flags, self._state.flag_log).ever_set(key)

    # ─── Persistence ────────────────────────────────────────

    def serialize(self) -> dict:
        """One blob holding flags, cooldowns, active events and history together."""
        blob = self._state.model_dump(mode="json")
        blob["last_event_by_category"] = dict(blob["cooldowns"])
        return blob

    def restore(self, blob: dict) -> bool:
        """Replace state from a blob. Older formats are migrated; bad blobs are rejected."""
        try:
            state = NarrativeState.model_validate(blob)
        except ValidationError as e:
            logger.error("Narrative state restore rejected: %s", e)
            return False
        self._state = state
        self._conference_context = None
        self._bus.emit(
            EventType.STATE_RESTORED,
            active_events=len(state.active_events),
            flags=len(state.flags),
        )
        return True

    def save(self, store: "NarrativeStore", slot_id: str) -> None:
        store.save(slot_id, self._state)

    def load(self, store: "NarrativeStore", slot_id: str) -> bool:
        state = store.load(slot_id)
        if state is None:
            return False
        return self.restore(state.model_dump(mode="json"))

    # ─── Notifications ──────────────────────────────────────

    def _publish_drama(self, drama: DramaDayResult, today: date) -> None:
        game_date = today.isoformat()
        for event in drama.new_events:
            self._bus.emit(
                EventType.DRAMA_TRIGGERED,
                game_date=game_date,
                event_id=event.id,
                template_id=event.template_id,
                severity=event.severity.value,
                title=event.title,
            )
        for event in drama.expired:
            self._bus.emit(EventType.DRAMA_EXPIRED, game_date=game_date, event_id=event.id)
        for event in drama.escalated:
            self._bus.emit(
                EventType.DRAMA_ESCALATED,
                game_date=game_date,
                event_id=event.id,
                follow_up_id=event.escalated_to_event_id,
            )
        for applied in drama.effects:
            self._publish_flags(applied, game_date)

    def _publish_flags(self, applied: AppliedEffects, game_date: str) -> None:
        for key in applied.flags_cleared:
            self._bus.emit(EventType.FLAG_CLEARED, game_date=game_date, key=key)
        for key in applied.flags_set:
            self._bus.emit(EventType.FLAG_SET, game_date=game_date, key=key)

"""
Interview selection and answers.

Selection for (context, match outcome, subject type, subject id):
1. Filter templates by context, outcome, subject type, flag gate and condition
2. Drop options whose required flags are inactive; a template left with
   no option is discarded with a diagnostic
3. Prefer flag-gated templates over generic ones, uniform random within a tier
4. For player subjects, sort options by personality weight (highest first).
   The player still picks; weights never remove an option.

A press conference is several distinct templates queued front to back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from ..config import EngineConfig, default_config
from ..errors import StateError
from ..rng import RandomSource, roll
from ..state.flags import FlagStore, is_pattern
from ..state.schema import (
    InterviewContext,
    InterviewHistoryEntry,
    InterviewOption,
    InterviewSubject,
    InterviewTemplate,
    MatchOutcome,
    PendingInterview,
)
from ..state.schemas.condition import referenced_flags, referenced_predicates
from .conditions import PLAYER_FLAG_PREDICATES, ConditionEvaluator, EvaluationContext
from .effects import AppliedEffects, EffectApplier
from .text import substitute

if TYPE_CHECKING:
    from ..state.schema import GameSnapshot, NarrativeState

logger = logging.getLogger(__name__)

CRISIS_FLAGS = ("crisis_active", "sponsor_trust_low", "visa_delayed_{playerId}")


@dataclass
class _Candidate:
    template: InterviewTemplate
    subject_id: str | None
    options: list[InterviewOption]
    specific: bool


def _player_patterns(template: InterviewTemplate) -> list[str]:
    """{playerId} flag patterns a template depends on, gate first."""
    keys = [template.requires_active_flag] if template.requires_active_flag else []
    keys.extend(referenced_flags(template.condition))
    keys.extend(
        PLAYER_FLAG_PREDICATES[name]
        for name in referenced_predicates(template.condition)
        if name in PLAYER_FLAG_PREDICATES
    )
    return [k for k in keys if is_pattern(k) and "{playerId}" in k]


class InterviewSelector:
    """Builds pending interview queues and applies answers."""

    def __init__(
        self,
        templates: list[InterviewTemplate],
        rng: RandomSource,
        config: EngineConfig | None = None,
        evaluator: ConditionEvaluator | None = None,
        applier: EffectApplier | None = None,
    ):
        self._config = config or default_config()
        self._rng = rng
        self._evaluator = evaluator or ConditionEvaluator()
        self._applier = applier or EffectApplier(rng)
        self._templates: dict[str, InterviewTemplate] = {}
        for template in templates:
            if template.id in self._templates:
                logger.warning("Duplicate interview template %s ignored", template.id)
                continue
            self._templates[template.id] = template

    @property
    def templates(self) -> dict[str, InterviewTemplate]:
        return dict(self._templates)

    # ─── Selection ──────────────────────────────────────────

    def select(
        self,
        state: "NarrativeState",
        snapshot: "GameSnapshot",
        context: InterviewContext,
        subject_type: InterviewSubject = InterviewSubject.MANAGER,
        match_outcome: MatchOutcome | None = None,
        subject_id: str | None = None,
        count: int = 1,
        opponent_team_id: str | None = None,
        match_id: str | None = None,
    ) -> list[PendingInterview]:
        """
        Return up to ``count`` pending interviews, most specific first.

        An empty list means nothing qualified; that is not an error.
        """
        flags = FlagStore(state.flags, state.flag_log)
        candidates = [
            c for c in (
                self._candidate(t, state, snapshot, flags, subject_id)
                for t in self._templates.values()
                if self._matches(t, context, subject_type, match_outcome)
            )
            if c is not None
        ]

        specific = [c for c in candidates if c.specific]
        generic = [c for c in candidates if not c.specific]
        picked = self._draw(specific, count)
        if len(picked) < count:
            picked += self._draw(generic, count - len(picked))

        opponent = opponent_team_id or snapshot.opponent_team_id
        return [self._bind(c, snapshot, opponent, match_id) for c in picked]

    def _matches(
        self,
        template: InterviewTemplate,
        context: InterviewContext,
        subject_type: InterviewSubject,
        match_outcome: MatchOutcome | None,
    ) -> bool:
        if template.context != context or template.subject_type != subject_type:
            return False
        if template.match_outcome in (None, MatchOutcome.ANY):
            return True
        return template.match_outcome == match_outcome

    def _candidate(
        self,
        template: InterviewTemplate,
        state: "NarrativeState",
        snapshot: "GameSnapshot",
        flags: FlagStore,
        subject_id: str | None,
    ) -> _Candidate | None:
        if template.subject_type == InterviewSubject.PLAYER:
            subject_id = subject_id or self._derive_subject(template, snapshot, flags)
            if subject_id is None:
                return None
        else:
            subject_id = None

        ctx = EvaluationContext(
            snapshot=snapshot, flags=flags, config=self._config, state=state, player_id=subject_id,
        )
        if not self._evaluator.gate_open(template.requires_active_flag, ctx):
            return None
        if not self._evaluator.evaluate(template.condition, ctx):
            return None

        options = [
            o for o in template.options
            if all(ctx.flag_active(f) for f in o.requires_flags)
        ]
        if not options:
            logger.warning("Interview %s has no available options; excluded", template.id)
            return None

        specific = (
            template.requires_active_flag is not None
            or bool(referenced_flags(template.condition))
            or any(n in PLAYER_FLAG_PREDICATES for n in referenced_predicates(template.condition))
        )
        return _Candidate(template=template, subject_id=subject_id, options=options, specific=specific)

    def _derive_subject(
        self,
        template: InterviewTemplate,
        snapshot: "GameSnapshot",
        flags: FlagStore,
    ) -> str | None:
        """
        Player named by an active {playerId}-scoped flag, else a random rostered player.

        Looks at the gate flag, then flags in the condition, then flags read
        by player-scoped predicates in the condition.
        """
        for pattern in _player_patterns(template):
            found = flags.find_active(pattern, snapshot.current_date)
            if found is None:
                continue
            player_id = found[1].get("playerId")
            if player_id and snapshot.player(player_id) is not None:
                return player_id
        if not snapshot.players:
            return None
        return self._rng.choice(snapshot.players).id

    def _draw(self, pool: list[_Candidate], count: int) -> list[_Candidate]:
        """Uniform draw without replacement."""
        pool = list(pool)
        drawn = []
        while pool and len(drawn) < count:
            pick = self._rng.choice(pool)
            pool.remove(pick)
            drawn.append(pick)
        return drawn

    def _bind(
        self,
        candidate: _Candidate,
        snapshot: "GameSnapshot",
        opponent_team_id: str | None,
        match_id: str | None,
    ) -> PendingInterview:
        template = candidate.template
        options = candidate.options
        if template.subject_type == InterviewSubject.PLAYER and candidate.subject_id:
            options = self.rank_options(options, snapshot, candidate.subject_id)
            options = [self._target_subject(o, candidate.subject_id) for o in options]

        return PendingInterview(
            template_id=template.id,
            context=template.context,
            subject_type=template.subject_type,
            subject_id=candidate.subject_id,
            opponent_team_id=opponent_team_id,
            match_id=match_id,
            prompt=substitute(template.prompt, snapshot, candidate.subject_id),
            options=options,
        )

    @staticmethod
    def rank_options(
        options: list[InterviewOption],
        snapshot: "GameSnapshot",
        subject_id: str,
    ) -> list[InterviewOption]:
        """Most personality-aligned first. Stable, so ties keep authored order."""
        player = snapshot.player(subject_id)
        if player is None:
            return list(options)
        return sorted(options, key=lambda o: -o.personality_weights.get(player.personality, 1))

    @staticmethod
    def _target_subject(option: InterviewOption, subject_id: str) -> InterviewOption:
        effects = option.effects
        if not effects.morale or effects.target_player_ids:
            return option
        return option.model_copy(
            update={"effects": effects.model_copy(update={"target_player_ids": [subject_id]})}
        )

    # ─── Answers ────────────────────────────────────────────

    def resolve(
        self,
        state: "NarrativeState",
        snapshot: "GameSnapshot",
        pending: PendingInterview,
        option_index: int,
        current_date: date,
    ) -> tuple[InterviewHistoryEntry, AppliedEffects]:
        """
        Apply the chosen answer and record it.

        Raises:
            StateError: interview not queued, already answered, or bad index
            EffectError: the option's bundle is malformed
        """
        queued = next((p for p in state.interview_queue if p.id == pending.id), None)
        if queued is None:
            raise StateError("interview", pending.template_id, "not pending")
        if queued.chosen_index is not None:
            raise StateError("interview", pending.template_id, "already answered")
        if not 0 <= option_index < len(queued.options):
            raise StateError("interview", pending.template_id, f"no option {option_index}")

        option = queued.options[option_index]
        flags = FlagStore(state.flags, state.flag_log)
        applied = self._applier.apply(
            option.effects,
            snapshot,
            flags,
            current_date,
            source=f"interview:{queued.template_id}",
            opponent_team_id=queued.opponent_team_id,
        )

        queued.chosen_index = option_index
        entry = InterviewHistoryEntry(
            date=current_date,
            template_id=queued.template_id,
            context=queued.context,
            chosen_tone=option.tone,
            effects=option.effects,
            subject_id=queued.subject_id,
            opponent_team_id=queued.opponent_team_id,
        )
        state.interview_history.append(entry)
        logger.info("Interview %s answered: %s", queued.template_id, option.tone.value)
        return entry, applied

    # ─── Press odds ─────────────────────────────────────────

    def press_chance(self, context: InterviewContext, snapshot: "GameSnapshot", flags: FlagStore) -> int:
        """Percent chance a conference is held for this context."""
        chances = self._config["press_chances"]
        if context == InterviewContext.KICKOFF:
            return 100
        if context == InterviewContext.CRISIS:
            return 100 if self.crisis_warranted(snapshot, flags) else 0
        if context == InterviewContext.PRE_MATCH:
            if snapshot.tournament is None:
                return 0
            chance = chances["pre_match_base"]
            if snapshot.is_playoff:
                chance += chances["playoff_bonus"]
            return min(chance, 100)

        chance = chances["post_match_base"]
        if snapshot.is_playoff:
            chance += chances["playoff_bonus"]
        if snapshot.loss_streak >= 2:
            chance += chances["loss_streak_bonus"]
        last = snapshot.last_match
        if last is not None and last.outcome == MatchOutcome.WIN and last.is_upset:
            chance += chances["upset_win_bonus"]
        return min(chance, 100)

    def should_hold_press(self, context: InterviewContext, snapshot: "GameSnapshot", flags: FlagStore) -> bool:
        return roll(self._rng, self.press_chance(context, snapshot, flags))

    def crisis_warranted(self, snapshot: "GameSnapshot", flags: FlagStore) -> bool:
        if snapshot.loss_streak >= self._config["crisis_loss_streak"]:
            return True
        lowest = snapshot.min_morale()
        if lowest is not None and lowest < self._config["low_morale_threshold"]:
            return True
        return any(flags.is_active(key, snapshot.current_date) for key in CRISIS_FLAGS)

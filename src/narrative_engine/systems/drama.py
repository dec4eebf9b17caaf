"""
Drama scheduler.

Owns the per-day lifecycle of drama events:

    active → resolved | escalated | expired     (each terminal, entered once)

advance_day() runs in a fixed order, since later steps read what earlier
ones wrote:
1. Age active events: escalate overdue majors, expire stale ones
2. Per category: skip if on cooldown, else roll eligible templates
3. Enforce the global active cap and the per-day cap (excess discarded)
4. Minor events resolve at creation (effects applied, shown as toast);
   major events stay active until resolve() is called

Chained triggering (drama_chance hits) goes through force_trigger(),
which skips the probability roll but keeps every other gate. Story arcs
go through follow_up(): a choice's ``triggers_event_id`` or a template's
``escalation_template_id`` names the next beat directly. Both are bounded
by ``max_chain_depth``.

The scheduler mutates the NarrativeState it is handed. The engine hands
it a working copy and commits only when the whole call succeeds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING

from ..config import EngineConfig, cooldown_days, default_config
from ..errors import EffectError, StateError
from ..rng import RandomSource, roll, weighted_choice
from ..state.flags import FlagStore
from ..state.schema import (
    DramaCategory,
    DramaEventInstance,
    DramaEventStatus,
    DramaEventTemplate,
    DramaSeverity,
    EffectBundle,
    PlayerSelector,
)
from .conditions import ConditionEvaluator, EvaluationContext
from .effects import AppliedEffects, EffectApplier
from .history import fired_within
from .text import substitute

if TYPE_CHECKING:
    from ..state.schema import GameSnapshot, NarrativeState

logger = logging.getLogger(__name__)

# once_per_season templates may not repeat within this window
SEASON_LENGTH_DAYS = 90


@dataclass
class DramaDayResult:
    """Everything one advance_day() produced."""
    toasts: list[DramaEventInstance] = field(default_factory=list)
    modal_queue: list[DramaEventInstance] = field(default_factory=list)
    expired: list[DramaEventInstance] = field(default_factory=list)
    escalated: list[DramaEventInstance] = field(default_factory=list)
    effects: list[AppliedEffects] = field(default_factory=list)
    discarded: list[str] = field(default_factory=list)  # template ids dropped by caps
    snapshot: "GameSnapshot | None" = None

    @property
    def new_events(self) -> list[DramaEventInstance]:
        return self.toasts + self.modal_queue


@dataclass
class DramaResolution:
    event: DramaEventInstance
    effects: AppliedEffects
    chained: DramaDayResult | None = None


class DramaScheduler:
    """
    Decides which drama fires each day and resolves player choices.

    Templates are indexed by category once at construction.
    """

    def __init__(
        self,
        templates: list[DramaEventTemplate],
        rng: RandomSource,
        config: EngineConfig | None = None,
        evaluator: ConditionEvaluator | None = None,
        applier: EffectApplier | None = None,
    ):
        self._config = config or default_config()
        self._rng = rng
        self._evaluator = evaluator or ConditionEvaluator()
        self._applier = applier or EffectApplier(rng)
        self._templates: dict[str, DramaEventTemplate] = {}
        self._by_category: dict[DramaCategory, list[DramaEventTemplate]] = {c: [] for c in DramaCategory}
        for template in templates:
            if template.id in self._templates:
                logger.warning("Duplicate drama template %s ignored", template.id)
                continue
            self._templates[template.id] = template
            self._by_category[template.category].append(template)

    @property
    def templates(self) -> dict[str, DramaEventTemplate]:
        return dict(self._templates)

    # ─── Daily pass ─────────────────────────────────────────

    def advance_day(self, state: "NarrativeState", snapshot: "GameSnapshot") -> DramaDayResult:
        today = snapshot.current_date
        flags = FlagStore(state.flags, state.flag_log)
        result = DramaDayResult(snapshot=snapshot)

        self._age_active_events(state, flags, today, result)

        for category in DramaCategory:
            if self.on_cooldown(state, category, today):
                continue

            ctx = self._context(state, result.snapshot, flags)
            candidates = self.eligible_templates(category, state, ctx)
            if not candidates:
                continue

            passed = []
            for template in candidates:
                chance = self.effective_probability(template, state, today)
                if roll(self._rng, chance):
                    passed.append((template, chance))
            if not passed:
                continue

            if len(passed) == 1:
                template = passed[0][0]
            else:
                template = weighted_choice(
                    self._rng, [t for t, _ in passed], [c for _, c in passed],
                )

            if self._at_capacity(state, today, daily=True):
                logger.debug("Drama %s discarded: cap reached", template.id)
                result.discarded.append(template.id)
                continue

            self._instantiate(template, state, flags, today, 0, result)

        return result

    def force_trigger(
        self,
        state: "NarrativeState",
        snapshot: "GameSnapshot",
        chain_depth: int = 1,
        result: DramaDayResult | None = None,
    ) -> DramaDayResult:
        """
        Trigger one eligible event immediately, skipping the probability roll.

        Cooldowns, conditions, flag gates, resolvability and the global
        active cap still apply. Returns a result with no new events when
        nothing qualifies.
        """
        today = snapshot.current_date
        flags = FlagStore(state.flags, state.flag_log)
        result = result or DramaDayResult(snapshot=snapshot)

        if chain_depth > self._config["max_chain_depth"]:
            logger.debug("Chained trigger refused at depth %d", chain_depth)
            return result
        if self._at_capacity(state, today, daily=False):
            logger.debug("Chained trigger refused: active cap reached")
            return result

        ctx = self._context(state, result.snapshot, flags)
        candidates: list[DramaEventTemplate] = []
        for category in DramaCategory:
            if not self.on_cooldown(state, category, today):
                candidates.extend(self.eligible_templates(category, state, ctx))
        if not candidates:
            logger.debug("Chained trigger found no eligible template")
            return result

        template = weighted_choice(self._rng, candidates, [t.probability for t in candidates])
        self._instantiate(template, state, flags, today, chain_depth, result)
        return result

    def follow_up(
        self,
        state: "NarrativeState",
        template_id: str,
        parent: DramaEventInstance,
        result: DramaDayResult,
    ) -> DramaEventInstance | None:
        """
        Start the next beat of a story arc after ``parent``.

        The authored link replaces the roll, cooldown and condition checks.
        The chain depth limit, the global active cap and resolvability still
        apply. Involved players carry over from the parent.
        """
        template = self._templates.get(template_id)
        if template is None:
            logger.warning("Drama %s links to unknown template %s", parent.template_id, template_id)
            return None
        chain_depth = parent.chain_depth + 1
        if chain_depth > self._config["max_chain_depth"]:
            logger.debug("Follow-up %s refused at depth %d", template_id, chain_depth)
            return None
        today = result.snapshot.current_date
        if self._at_capacity(state, today, daily=False):
            logger.debug("Follow-up %s refused: active cap reached", template_id)
            return None

        players = list(parent.affected_player_ids) if template.player_selector is not None else []
        flags = FlagStore(state.flags, state.flag_log)
        ctx = EvaluationContext(
            snapshot=result.snapshot, flags=flags, config=self._config, state=state,
            player_id=players[0] if players else None,
        )
        if not self.is_resolvable(template, ctx):
            logger.debug("Follow-up %s skipped: no choice is currently available", template_id)
            return None

        return self._instantiate(
            template, state, flags, today, chain_depth, result,
            players=players or None, parent_id=parent.id,
        )

    # ─── Resolution ─────────────────────────────────────────

    def resolve(
        self,
        state: "NarrativeState",
        snapshot: "GameSnapshot",
        event_id: str,
        choice_id: str,
    ) -> DramaResolution:
        """
        Apply a player's choice to an active major event.

        Raises:
            StateError: the event is not active, or the choice is unknown or locked
            EffectError: the choice's bundle is malformed
        """
        today = snapshot.current_date
        event = next((e for e in state.active_events if e.id == event_id), None)
        if event is None:
            known = any(e.id == event_id for e in state.event_history)
            raise StateError("drama event", event_id, "already resolved" if known else "not found")

        template = self._templates.get(event.template_id)
        if template is None:
            raise StateError("drama event", event_id, f"unknown template {event.template_id}")

        choice = template.choice(choice_id)
        if choice is None:
            raise StateError("drama event", event_id, f"unknown choice {choice_id}")

        flags = FlagStore(state.flags, state.flag_log)
        ctx = self._context(state, snapshot, flags)
        if not all(ctx.flag_active(f) for f in choice.requires_flags):
            raise StateError("drama event", event_id, f"choice {choice_id} is locked")

        bundle = self._bind_targets(choice.effects, template, event.affected_player_ids)
        applied = self._applier.apply(bundle, snapshot, flags, today, source=f"drama:{template.id}")

        player_id = event.affected_player_ids[0] if event.affected_player_ids else None
        event.status = DramaEventStatus.RESOLVED
        event.resolved_date = today
        event.chosen_option_id = choice.id
        event.applied_effects = bundle
        event.outcome_text = substitute(choice.outcome_text, snapshot, player_id) or None
        self._retire(state, event)
        state.total_major_decisions += 1

        resolution = DramaResolution(event=event, effects=applied)
        if choice.triggers_event_id or applied.chain_requested:
            resolution.chained = DramaDayResult(snapshot=applied.apply_to(snapshot))
        if choice.triggers_event_id:
            self.follow_up(state, choice.triggers_event_id, event, resolution.chained)
        if applied.chain_requested:
            self.force_trigger(
                state, resolution.chained.snapshot, event.chain_depth + 1, resolution.chained,
            )
        return resolution

    # ─── Eligibility ────────────────────────────────────────

    def on_cooldown(self, state: "NarrativeState", category: DramaCategory, today: date) -> bool:
        last = state.cooldowns.get(category)
        if last is None:
            return False
        return (today - last).days < cooldown_days(self._config, category)

    def eligible_templates(
        self,
        category: DramaCategory,
        state: "NarrativeState",
        ctx: EvaluationContext,
    ) -> list[DramaEventTemplate]:
        eligible = []
        for template in self._by_category[category]:
            if template.once_per_season and fired_within(state, template.id, ctx.today, SEASON_LENGTH_DAYS):
                continue
            if not self._evaluator.gate_open(template.requires_active_flag, ctx):
                continue
            if not self._evaluator.evaluate(template.condition, ctx):
                continue
            if not self.is_resolvable(template, ctx):
                logger.debug("Drama %s skipped: no choice is currently available", template.id)
                continue
            eligible.append(template)
        return eligible

    def is_resolvable(self, template: DramaEventTemplate, ctx: EvaluationContext) -> bool:
        """A major event needs at least one choice whose flags are all active."""
        if template.severity == DramaSeverity.MINOR:
            return True
        return any(
            all(ctx.flag_active(f) for f in choice.requires_flags)
            for choice in template.choices
        )

    def effective_probability(self, template: DramaEventTemplate, state: "NarrativeState", today: date) -> float:
        """Base probability, boosted when the category has been quiet."""
        last = state.cooldowns.get(template.category)
        quiet = last is None or (today - last).days >= self._config["category_boost_days"]
        if quiet:
            return min(template.probability * self._config["category_boost_multiplier"], 100.0)
        return template.probability

    # ─── Internals ──────────────────────────────────────────

    def _context(self, state, snapshot, flags) -> EvaluationContext:
        return EvaluationContext(snapshot=snapshot, flags=flags, config=self._config, state=state)

    def _at_capacity(self, state: "NarrativeState", today: date, daily: bool) -> bool:
        if len(state.active_events) >= self._config["max_active_events"]:
            return True
        if daily:
            fired_today = sum(
                1 for e in state.active_events + state.event_history
                if e.triggered_date == today
            )
            return fired_today >= self._config["max_events_per_day"]
        return False

    def _age_active_events(self, state, flags, today, result: DramaDayResult) -> None:
        grace = self._config["escalation_grace_days"]
        for event in list(state.active_events):
            template = self._templates.get(event.template_id)
            age = event.age(today)

            if (
                grace is not None
                and event.severity == DramaSeverity.MAJOR
                and template is not None
                and (template.escalation_effects is not None or template.escalation_template_id)
                and age >= grace
            ):
                self._escalate(event, template, state, flags, today, result)
                continue

            if age >= self._expiry_days(event, template):
                event.status = DramaEventStatus.EXPIRED
                event.resolved_date = today
                self._retire(state, event)
                result.expired.append(event)
                logger.debug("Drama %s expired after %d days", event.template_id, age)

    def _escalate(self, event, template, state, flags, today, result: DramaDayResult) -> None:
        bundle = None
        if template.escalation_effects is not None:
            bundle = self._bind_targets(template.escalation_effects, template, event.affected_player_ids)
            try:
                applied = self._applier.apply(
                    bundle, result.snapshot, flags, today, source=f"escalation:{template.id}",
                )
            except EffectError as e:
                logger.warning("Escalation effects for %s rejected: %s", template.id, e)
                bundle = None
            else:
                # escalation effects never chain; only the authored follow-up does
                applied.chain_requested = False
                result.effects.append(applied)
                result.snapshot = applied.apply_to(result.snapshot)

        event.status = DramaEventStatus.ESCALATED
        event.resolved_date = today
        event.applied_effects = bundle
        self._retire(state, event)
        result.escalated.append(event)
        logger.info("Drama %s escalated after being ignored", template.id)

        if template.escalation_template_id:
            follow = self.follow_up(state, template.escalation_template_id, event, result)
            if follow is not None:
                event.escalated_to_event_id = follow.id

    def _expiry_days(self, event: DramaEventInstance, template: DramaEventTemplate | None) -> int:
        if template is not None and template.expiry_days is not None:
            return template.expiry_days
        if event.severity == DramaSeverity.MAJOR:
            return self._config["major_expiry_days"]
        return self._config["minor_expiry_days"]

    def _instantiate(
        self,
        template: DramaEventTemplate,
        state: "NarrativeState",
        flags: FlagStore,
        today: date,
        chain_depth: int,
        result: DramaDayResult,
        players: list[str] | None = None,
        parent_id: str | None = None,
    ) -> DramaEventInstance | None:
        snapshot = result.snapshot
        if players is None:
            players = self._select_players(template, snapshot)
        player_id = players[0] if players else None

        instance = DramaEventInstance(
            template_id=template.id,
            category=template.category,
            severity=template.severity,
            triggered_date=today,
            affected_player_ids=players,
            title=substitute(template.title, snapshot, player_id),
            description=substitute(template.description, snapshot, player_id),
            chain_depth=chain_depth,
            parent_event_id=parent_id,
        )

        applied = None
        if template.severity == DramaSeverity.MINOR:
            bundle = self._bind_targets(template.effects, template, players)
            try:
                applied = self._applier.apply(
                    bundle, snapshot, flags, today, source=f"drama:{template.id}",
                )
            except EffectError as e:
                logger.warning("Drama %s skipped, bad effects: %s", template.id, e)
                return None
            instance.status = DramaEventStatus.RESOLVED
            instance.resolved_date = today
            instance.applied_effects = bundle
            state.event_history.append(instance)
            state.toasts.append(instance.id)
            result.toasts.append(instance)
            result.effects.append(applied)
            result.snapshot = applied.apply_to(snapshot)
        else:
            state.active_events.append(instance)
            result.modal_queue.append(instance)

        state.cooldowns[template.category] = today
        state.total_events_triggered += 1
        logger.info("Drama triggered: %s (%s, depth %d)", template.id, template.severity.value, chain_depth)

        if applied is not None and applied.chain_requested:
            self.force_trigger(state, result.snapshot, chain_depth + 1, result)

        return instance

    def _select_players(self, template: DramaEventTemplate, snapshot: "GameSnapshot") -> list[str]:
        players = snapshot.players
        if template.player_selector is None or not players:
            return []
        if template.player_selector == PlayerSelector.LOWEST_MORALE:
            return [min(players, key=lambda p: p.morale).id]
        if template.player_selector == PlayerSelector.STAR_PLAYER:
            return [max(players, key=lambda p: p.rating).id]
        if template.player_selector == PlayerSelector.IMPORT_PLAYER:
            imports = [p for p in players if p.is_import]
            return [self._rng.choice(imports).id] if imports else []
        return [self._rng.choice(players).id]

    @staticmethod
    def _bind_targets(
        bundle: EffectBundle,
        template: DramaEventTemplate,
        players: list[str],
    ) -> EffectBundle:
        """Narrow morale to the involved player when the event is about someone."""
        if bundle.target_player_ids or template.player_selector is None or not players:
            return bundle
        return bundle.model_copy(update={"target_player_ids": list(players)})

    @staticmethod
    def _retire(state: "NarrativeState", event: DramaEventInstance) -> None:
        state.active_events = [e for e in state.active_events if e.id != event.id]
        state.event_history.append(event)

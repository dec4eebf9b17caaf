"""
Condition evaluation against a game snapshot and the flag store.

Evaluation is a structural fold over the condition grammar. ``and``
stops at the first false child, ``or`` at the first true one.

Atomic predicates and threshold metrics are looked up in registries, so
new ones are added with a decorator:

    @register_predicate("grand_final")
    def _grand_final(ctx: EvaluationContext) -> bool:
        return ctx.snapshot.tournament is not None and ctx.snapshot.tournament.grand_final

Unknown names fail closed: they evaluate False and log one warning per
name, since content may reference predicates this build does not know.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Callable

from ..config import EngineConfig
from ..state.flags import fill_pattern
from ..state.schema import MatchOutcome
from ..state.schemas.condition import And, Atomic, Condition, FlagActive, Or, Threshold
from .history import count_recent

if TYPE_CHECKING:
    from ..state.flags import FlagStore
    from ..state.schema import GameSnapshot, NarrativeState

logger = logging.getLogger(__name__)


@dataclass
class EvaluationContext:
    """
    Everything a predicate may read. Nothing here is mutated.

    ``player_id`` binds ``{playerId}`` in flag patterns when a condition
    is evaluated for a specific subject. Unbound placeholders match any id.
    """
    snapshot: "GameSnapshot"
    flags: "FlagStore"
    config: EngineConfig
    state: "NarrativeState | None" = None
    player_id: str | None = None

    @property
    def today(self) -> date:
        return self.snapshot.current_date

    def flag_active(self, key: str) -> bool:
        key = fill_pattern(key, player_id=self.player_id)
        return self.flags.is_active(key, self.today)


Predicate = Callable[[EvaluationContext], bool]
Metric = Callable[[EvaluationContext], "float | None"]

PREDICATES: dict[str, Predicate] = {}
METRICS: dict[str, Metric] = {}


def register_predicate(name: str) -> Callable[[Predicate], Predicate]:
    def decorator(fn: Predicate) -> Predicate:
        PREDICATES[name] = fn
        return fn
    return decorator


def register_metric(name: str) -> Callable[[Metric], Metric]:
    def decorator(fn: Metric) -> Metric:
        METRICS[name] = fn
        return fn
    return decorator


class ConditionEvaluator:
    """Evaluates condition trees. Registries default to the module-level ones."""

    def __init__(
        self,
        predicates: dict[str, Predicate] | None = None,
        metrics: dict[str, Metric] | None = None,
    ):
        self._predicates = predicates if predicates is not None else PREDICATES
        self._metrics = metrics if metrics is not None else METRICS
        self._warned: set[str] = set()

    def evaluate(self, condition: Condition, ctx: EvaluationContext) -> bool:
        if isinstance(condition, Atomic):
            predicate = self._predicates.get(condition.name)
            if predicate is None:
                self._warn_unknown("predicate", condition.name)
                return False
            return bool(predicate(ctx))

        if isinstance(condition, FlagActive):
            return ctx.flag_active(condition.flag)

        if isinstance(condition, Threshold):
            return self._threshold(condition, ctx)

        if isinstance(condition, And):
            return all(self.evaluate(child, ctx) for child in condition.of)

        if isinstance(condition, Or):
            return any(self.evaluate(child, ctx) for child in condition.of)

        self._warn_unknown("condition node", type(condition).__name__)
        return False

    def gate_open(self, requires_active_flag: str | None, ctx: EvaluationContext) -> bool:
        """Template-level flag gate: absent, or active."""
        return requires_active_flag is None or ctx.flag_active(requires_active_flag)

    def _threshold(self, condition: Threshold, ctx: EvaluationContext) -> bool:
        metric = self._metrics.get(condition.metric)
        if metric is None:
            self._warn_unknown("metric", condition.metric)
            return False
        value = metric(ctx)
        if value is None:
            return False
        if condition.below is not None and not value < condition.below:
            return False
        if condition.at_least is not None and not value >= condition.at_least:
            return False
        return True

    def _warn_unknown(self, kind: str, name: str) -> None:
        if name in self._warned:
            return
        self._warned.add(name)
        logger.warning("Unknown %s %r in condition; treating as false", kind, name)


# ─── Built-in predicates ────────────────────────────────────


@register_predicate("always")
def _always(ctx: EvaluationContext) -> bool:
    return True


@register_predicate("tournament_active")
def _tournament_active(ctx: EvaluationContext) -> bool:
    return ctx.snapshot.tournament is not None


@register_predicate("pre_playoff")
def _pre_playoff(ctx: EvaluationContext) -> bool:
    return ctx.snapshot.is_playoff


@register_predicate("rivalry_active")
def _rivalry_active(ctx: EvaluationContext) -> bool:
    threshold = ctx.config["rivalry_active_threshold"]
    snap = ctx.snapshot
    if snap.opponent_team_id is not None:
        return snap.rivalries.get(snap.opponent_team_id, 0) >= threshold
    return any(intensity >= threshold for intensity in snap.rivalries.values())


@register_predicate("win_streak_2plus")
def _win_streak_2(ctx: EvaluationContext) -> bool:
    return ctx.snapshot.win_streak >= 2


@register_predicate("win_streak_3plus")
def _win_streak_3(ctx: EvaluationContext) -> bool:
    return ctx.snapshot.win_streak >= 3


@register_predicate("loss_streak_2plus")
def _loss_streak_2(ctx: EvaluationContext) -> bool:
    return ctx.snapshot.loss_streak >= 2


@register_predicate("loss_streak_3plus")
def _loss_streak_3(ctx: EvaluationContext) -> bool:
    return ctx.snapshot.loss_streak >= 3


@register_predicate("last_match_win")
def _last_match_win(ctx: EvaluationContext) -> bool:
    last = ctx.snapshot.last_match
    return last is not None and last.outcome == MatchOutcome.WIN


@register_predicate("last_match_loss")
def _last_match_loss(ctx: EvaluationContext) -> bool:
    last = ctx.snapshot.last_match
    return last is not None and last.outcome == MatchOutcome.LOSS


@register_predicate("upset_win")
def _upset_win(ctx: EvaluationContext) -> bool:
    last = ctx.snapshot.last_match
    return last is not None and last.outcome == MatchOutcome.WIN and last.is_upset


@register_predicate("lower_bracket")
def _lower_bracket(ctx: EvaluationContext) -> bool:
    t = ctx.snapshot.tournament
    return t is not None and t.bracket == "lower"


@register_predicate("upper_bracket")
def _upper_bracket(ctx: EvaluationContext) -> bool:
    t = ctx.snapshot.tournament
    return t is not None and t.bracket == "upper"


@register_predicate("elimination_risk")
def _elimination_risk(ctx: EvaluationContext) -> bool:
    t = ctx.snapshot.tournament
    return t is not None and t.elimination_risk


@register_predicate("grand_final")
def _grand_final(ctx: EvaluationContext) -> bool:
    t = ctx.snapshot.tournament
    return t is not None and t.grand_final


@register_predicate("opponent_dropped_from_upper")
def _opponent_dropped(ctx: EvaluationContext) -> bool:
    t = ctx.snapshot.tournament
    return t is not None and t.opponent_dropped_from_upper


@register_predicate("low_morale")
def _low_morale(ctx: EvaluationContext) -> bool:
    lowest = ctx.snapshot.min_morale()
    return lowest is not None and lowest < ctx.config["low_morale_threshold"]


@register_predicate("drama_active")
def _drama_active(ctx: EvaluationContext) -> bool:
    return _low_morale(ctx) or ctx.flag_active("crisis_active")


@register_predicate("sponsor_trust_low")
def _sponsor_trust_low(ctx: EvaluationContext) -> bool:
    return (
        ctx.snapshot.sponsor_trust < ctx.config["sponsor_trust_low_threshold"]
        or ctx.flag_active("sponsor_trust_low")
    )


@register_predicate("has_import_player")
def _has_import(ctx: EvaluationContext) -> bool:
    return any(p.is_import for p in ctx.snapshot.players)


@register_predicate("team_identity_fragile")
def _identity_fragile(ctx: EvaluationContext) -> bool:
    return ctx.flag_active("team_identity_fragile")


@register_predicate("team_identity_resilient")
def _identity_resilient(ctx: EvaluationContext) -> bool:
    return ctx.flag_active("team_identity_resilient")


@register_predicate("team_identity_star_carry")
def _identity_star_carry(ctx: EvaluationContext) -> bool:
    return ctx.flag_active("team_identity_star_carry")


# Predicates that read one player-scoped flag, by the pattern they read
PLAYER_FLAG_PREDICATES = {
    "visa_delay_active": "visa_delayed_{playerId}",
}


@register_predicate("visa_delay_active")
def _visa_delay(ctx: EvaluationContext) -> bool:
    return ctx.flag_active(PLAYER_FLAG_PREDICATES["visa_delay_active"])


# ─── Built-in metrics ───────────────────────────────────────


@register_metric("min_player_morale")
def _metric_min_morale(ctx: EvaluationContext) -> float | None:
    return ctx.snapshot.min_morale()


@register_metric("team_chemistry")
def _metric_chemistry(ctx: EvaluationContext) -> float | None:
    return ctx.snapshot.chemistry


@register_metric("sponsor_trust")
def _metric_sponsor_trust(ctx: EvaluationContext) -> float | None:
    return ctx.snapshot.sponsor_trust


@register_metric("hype")
def _metric_hype(ctx: EvaluationContext) -> float | None:
    return ctx.snapshot.hype


@register_metric("fanbase")
def _metric_fanbase(ctx: EvaluationContext) -> float | None:
    return ctx.snapshot.fanbase


@register_metric("season_day")
def _metric_season_day(ctx: EvaluationContext) -> float | None:
    return ctx.snapshot.season_day


@register_metric("win_streak")
def _metric_win_streak(ctx: EvaluationContext) -> float | None:
    return ctx.snapshot.win_streak


@register_metric("loss_streak")
def _metric_loss_streak(ctx: EvaluationContext) -> float | None:
    return ctx.snapshot.loss_streak


@register_metric("opponent_rivalry")
def _metric_opponent_rivalry(ctx: EvaluationContext) -> float | None:
    opponent = ctx.snapshot.opponent_team_id
    if opponent is None:
        return None
    return ctx.snapshot.rivalries.get(opponent, 0)


@register_metric("recent_drama_events")
def _metric_recent_drama(ctx: EvaluationContext) -> float | None:
    """Drama events triggered in the last 7 days."""
    if ctx.state is None:
        return 0
    return count_recent(ctx.state, ctx.today, 7)

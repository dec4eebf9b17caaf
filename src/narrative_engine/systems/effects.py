"""
Effect application for drama choices and interview answers.

A bundle is validated in full before anything is touched, so a
resolution either applies completely or raises EffectError with state
unchanged. Flag clears run before sets, letting one answer replace a
flag atomically.

Counter deltas are not written into the snapshot (the host game owns
those counters). They come back as an AppliedEffects record holding the
clamped new values, which the caller can fold into its own state or
into the working snapshot via ``apply_to``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING

from ..errors import EffectError
from ..rng import RandomSource, clamp, roll
from ..state.flags import fill_pattern, is_pattern

if TYPE_CHECKING:
    from ..state.flags import FlagStore
    from ..state.schema import EffectBundle, GameSnapshot

logger = logging.getLogger(__name__)

COUNTER_MIN = 0
COUNTER_MAX = 100


@dataclass
class AppliedEffects:
    """
    Result of applying one bundle.

    Counter fields hold the new clamped value, or None when untouched.
    ``chain_requested`` is set when the drama_chance roll succeeded.
    """
    source: str
    morale: dict[str, int] = field(default_factory=dict)
    fanbase: int | None = None
    hype: int | None = None
    sponsor_trust: int | None = None
    chemistry: int | None = None
    rivalries: dict[str, int] = field(default_factory=dict)
    flags_set: list[str] = field(default_factory=list)
    flags_cleared: list[str] = field(default_factory=list)
    chain_requested: bool = False

    def apply_to(self, snapshot: "GameSnapshot") -> "GameSnapshot":
        """Return a copy of the snapshot with these counters folded in."""
        players = [
            p.model_copy(update={"morale": self.morale[p.id]}) if p.id in self.morale else p
            for p in snapshot.players
        ]
        update: dict = {"players": players, "rivalries": {**snapshot.rivalries, **self.rivalries}}
        for name in ("fanbase", "hype", "sponsor_trust", "chemistry"):
            value = getattr(self, name)
            if value is not None:
                update[name] = value
        return snapshot.model_copy(update=update)


def _shift(current: int, delta: int | None) -> int | None:
    if not delta:
        return None
    return int(clamp(current + delta, COUNTER_MIN, COUNTER_MAX))


class EffectApplier:
    """Validates and applies effect bundles."""

    def __init__(self, rng: RandomSource):
        self._rng = rng

    def validate(
        self,
        bundle: "EffectBundle",
        snapshot: "GameSnapshot",
        opponent_team_id: str | None = None,
    ) -> None:
        """Raise EffectError on the first malformed reference."""
        for key in bundle.clears_flags:
            if not key or not key.strip():
                raise EffectError("empty flag key in clears_flags")
        for entry in bundle.sets_flags:
            if not entry.key or not entry.key.strip():
                raise EffectError("empty flag key in sets_flags")
            if entry.duration_days is not None and entry.duration_days < 0:
                raise EffectError(f"negative duration for flag {entry.key}")
            resolved = self._resolve_key(entry.key, bundle, opponent_team_id)
            if is_pattern(resolved):
                raise EffectError(f"flag {entry.key} has an unbound placeholder")
        if bundle.drama_chance is not None and not 0 <= bundle.drama_chance <= 100:
            raise EffectError(f"drama_chance {bundle.drama_chance} outside 0-100")
        for player_id in bundle.target_player_ids:
            if snapshot.player(player_id) is None:
                raise EffectError(f"unknown target player {player_id}")

    def apply(
        self,
        bundle: "EffectBundle",
        snapshot: "GameSnapshot",
        flags: "FlagStore",
        today: date,
        source: str,
        opponent_team_id: str | None = None,
    ) -> AppliedEffects:
        """
        Apply a bundle: counters, then flag clears, then flag sets, then
        the drama_chance roll.

        Raises:
            EffectError: bundle is malformed. Nothing was mutated.
        """
        self.validate(bundle, snapshot, opponent_team_id)

        result = AppliedEffects(source=source)

        if bundle.morale:
            targets = set(bundle.target_player_ids)
            for player in snapshot.players:
                if targets and player.id not in targets:
                    continue
                result.morale[player.id] = int(
                    clamp(player.morale + bundle.morale, COUNTER_MIN, COUNTER_MAX)
                )

        result.fanbase = _shift(snapshot.fanbase, bundle.fanbase)
        result.hype = _shift(snapshot.hype, bundle.hype)
        result.sponsor_trust = _shift(snapshot.sponsor_trust, bundle.sponsor_trust)
        result.chemistry = _shift(snapshot.chemistry, bundle.chemistry)

        if bundle.rivalry_delta:
            opponent = opponent_team_id or snapshot.opponent_team_id
            if opponent is None:
                logger.debug("%s: rivalry_delta with no opponent, skipped", source)
            else:
                current = snapshot.rivalries.get(opponent, 0)
                result.rivalries[opponent] = int(
                    clamp(current + bundle.rivalry_delta, COUNTER_MIN, COUNTER_MAX)
                )

        for key in bundle.clears_flags:
            key = self._resolve_key(key, bundle, opponent_team_id)
            if flags.clear(key, today):
                result.flags_cleared.append(key)

        for entry in bundle.sets_flags:
            key = self._resolve_key(entry.key, bundle, opponent_team_id)
            flags.set(key, entry.duration_days, today)
            result.flags_set.append(key)

        if bundle.drama_chance:
            result.chain_requested = roll(self._rng, bundle.drama_chance)
            if result.chain_requested:
                logger.debug("%s: drama_chance %s%% hit", source, bundle.drama_chance)

        return result

    @staticmethod
    def _resolve_key(key: str, bundle: "EffectBundle", opponent_team_id: str | None) -> str:
        player_id = bundle.target_player_ids[0] if len(bundle.target_player_ids) == 1 else None
        return fill_pattern(key, player_id=player_id, team_id=opponent_team_id)

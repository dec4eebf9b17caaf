"""Placeholder substitution for narrative text."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..state.schema import GameSnapshot

_TOKEN = re.compile(r"\{(playerName|teamName|opponentName)\}")


def substitute(text: str, snapshot: "GameSnapshot", player_id: str | None = None) -> str:
    """
    Fill {playerName}, {teamName} and {opponentName}.

    Unknown tokens are left as written; a token with no value available
    falls back to a neutral phrase.
    """
    player = snapshot.player(player_id) if player_id else None
    values = {
        "playerName": player.name if player else "a player",
        "teamName": snapshot.team_name,
        "opponentName": snapshot.opponent_name or "the opposition",
    }
    return _TOKEN.sub(lambda m: values[m.group(1)], text)

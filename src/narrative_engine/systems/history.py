"""
Append-only history queries.

Drama instances, interview answers and flag mutations are only ever
appended; ``trim`` drops the oldest entries once a log passes its limit.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING

from ..state.schema import DramaCategory, InterviewContext, InterviewTone

if TYPE_CHECKING:
    from ..state.schema import DramaEventInstance, InterviewHistoryEntry, NarrativeState


def trim(state: "NarrativeState", limit: int) -> None:
    """
    Keep the newest ``limit`` drama and interview entries.

    The flag log keeps its newest ``2 * limit`` entries, plus the latest
    "set" entry of any key that would otherwise vanish from it, so
    ``FlagStore.ever_set`` survives trimming.
    """
    if limit <= 0:
        return
    if len(state.event_history) > limit:
        state.event_history = state.event_history[-limit:]
        kept = {e.id for e in state.event_history}
        state.toasts = [t for t in state.toasts if t in kept]
    if len(state.interview_history) > limit:
        state.interview_history = state.interview_history[-limit:]
    if len(state.flag_log) > limit * 2:
        dropped = state.flag_log[:-limit * 2]
        recent = state.flag_log[-limit * 2:]
        still_logged = {e.key for e in recent if e.action == "set"}
        last_set = {}
        for entry in dropped:
            if entry.action == "set" and entry.key not in still_logged:
                last_set[entry.key] = entry
        survivors = [e for e in dropped if last_set.get(e.key) is e]
        state.flag_log = survivors + recent


def recent_events(state: "NarrativeState", limit: int | None = None) -> list["DramaEventInstance"]:
    """Most recent terminal drama events, newest first."""
    events = list(reversed(state.event_history))
    return events if limit is None else events[:limit]


def recent_interviews(state: "NarrativeState", limit: int | None = None) -> list["InterviewHistoryEntry"]:
    entries = list(reversed(state.interview_history))
    return entries if limit is None else entries[:limit]


def count_recent(
    state: "NarrativeState",
    today: date,
    days: int,
    category: DramaCategory | None = None,
) -> int:
    """Events triggered within the last ``days`` days, optionally in one category."""
    since = today - timedelta(days=days)
    return sum(
        1 for e in state.active_events + state.event_history
        if e.triggered_date > since and (category is None or e.category == category)
    )


def fired_within(state: "NarrativeState", template_id: str, today: date, days: int) -> bool:
    since = today - timedelta(days=days)
    return any(
        e.template_id == template_id and e.triggered_date > since
        for e in state.active_events + state.event_history
    )


def had_trash_talk_before(state: "NarrativeState", opponent_team_id: str) -> bool:
    """Whether the last pre-match answer against this opponent was trash talk."""
    for entry in reversed(state.interview_history):
        if entry.opponent_team_id != opponent_team_id:
            continue
        if entry.context == InterviewContext.PRE_MATCH:
            return entry.chosen_tone == InterviewTone.TRASH_TALK
    return False

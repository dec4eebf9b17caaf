"""
Headless season runner.

Drives the engine through a synthetic season (matches every few days,
press conferences, drama decisions) with an automated manager persona.
Used to tune cadence and to eyeball how content fires over time.
"""

from __future__ import annotations

import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path

from ..engine import NarrativeEngine
from ..state.schema import (
    DramaEventInstance,
    GameSnapshot,
    InterviewContext,
    MatchOutcome,
    MatchResult,
    PendingInterview,
    PlayerPersonality,
    PlayerSnapshot,
    TournamentContext,
)
from .personas import PERSONAS

MATCH_EVERY_DAYS = 3
PLAYOFFS_FROM_DAY = 60

DEFAULT_ROSTER = [
    PlayerSnapshot(id="p1", name="Kairo", personality=PlayerPersonality.BIG_STAGE, rating=84, morale=62),
    PlayerSnapshot(id="p2", name="Vex", personality=PlayerPersonality.FAME_SEEKER, rating=78, morale=55),
    PlayerSnapshot(id="p3", name="Mirelle", personality=PlayerPersonality.TEAM_FIRST, rating=74, morale=60),
    PlayerSnapshot(id="p4", name="Osk", personality=PlayerPersonality.INTROVERT, rating=70, morale=50, is_import=True),
    PlayerSnapshot(id="p5", name="Dace", personality=PlayerPersonality.STABLE, rating=68, morale=58),
]

# (team id, display name, strength 0-1)
OPPONENTS = [
    ("t-vortex", "Vortex", 0.6),
    ("t-halcyon", "Halcyon", 0.45),
    ("t-ironclad", "Ironclad", 0.55),
    ("t-northwind", "Northwind", 0.35),
]


@dataclass
class SimulationEntry:
    """One line of the season log."""
    day: int
    kind: str  # drama, decision, interview, match, escalated, expired
    text: str


@dataclass
class SimulationReport:
    """Complete record of a simulated season."""

    persona: str = "diplomat"
    seed: int | None = None
    days: int = 0
    started_at: datetime = field(default_factory=datetime.now)
    entries: list[SimulationEntry] = field(default_factory=list)
    by_category: Counter = field(default_factory=Counter)
    by_severity: Counter = field(default_factory=Counter)
    tones: Counter = field(default_factory=Counter)
    escalated: int = 0
    expired: int = 0
    chained: int = 0
    record: list[str] = field(default_factory=list)
    final: dict = field(default_factory=dict)

    def add(self, day: int, kind: str, text: str) -> None:
        self.entries.append(SimulationEntry(day=day, kind=kind, text=text))

    def record_event(self, day: int, event: DramaEventInstance) -> None:
        self.by_category[event.category.value] += 1
        self.by_severity[event.severity.value] += 1
        self.add(day, "drama", f"[{event.severity.value}] {event.title}")

    @property
    def total_events(self) -> int:
        return sum(self.by_category.values())

    def to_markdown(self) -> str:
        """Convert report to markdown format."""
        wins = self.record.count("W")
        lines = [
            "# Season Simulation",
            "",
            f"- **Date:** {self.started_at.strftime('%Y-%m-%d %H:%M:%S')}",
            f"- **Persona:** {self.persona}",
            f"- **Seed:** {self.seed}",
            f"- **Days:** {self.days}",
            f"- **Record:** {wins}-{len(self.record) - wins}",
            f"- **Drama events:** {self.total_events} "
            f"({self.by_severity.get('minor', 0)} minor, {self.by_severity.get('major', 0)} major)",
            f"- **Escalated / expired / chained:** {self.escalated} / {self.expired} / {self.chained}",
            "",
            "---",
            "",
        ]

        current_day = None
        for entry in self.entries:
            if entry.day != current_day:
                current_day = entry.day
                lines.append(f"## Day {current_day}")
                lines.append("")
            lines.append(f"- *{entry.kind}*: {entry.text}")

        lines.append("")
        lines.append("## Final State")
        lines.append("")
        for key, value in self.final.items():
            lines.append(f"- **{key}:** {value}")
        lines.append("")

        return "\n".join(lines)

    def save(self, simulations_dir: Path) -> Path:
        """Save report to file. Returns the file path."""
        simulations_dir.mkdir(parents=True, exist_ok=True)
        timestamp = self.started_at.strftime("%Y-%m-%d_%H%M%S")
        filepath = simulations_dir / f"season_{timestamp}_{self.persona}.md"
        filepath.write_text(self.to_markdown(), encoding="utf-8")
        return filepath


class AutoManager:
    """Answers interviews and drama modals according to a persona."""

    def __init__(self, persona: str, rng: random.Random):
        if persona not in PERSONAS:
            raise ValueError(f"Unknown persona: {persona}")
        self.persona = PERSONAS[persona]
        self.rng = rng

    def pick_option(self, pending: PendingInterview) -> int:
        preferred = self.persona["tones"]
        for tone in preferred:
            for i, option in enumerate(pending.options):
                if option.tone.value == tone:
                    return i
        return self.rng.randrange(len(pending.options))

    def pick_choice(self, choice_ids: list[str]) -> str | None:
        if not choice_ids:
            return None
        style = self.persona["drama_choice"]
        if style == "first":
            return choice_ids[0]
        if style == "last":
            return choice_ids[-1]
        return self.rng.choice(choice_ids)

    def ignores_modal(self) -> bool:
        """Chaotic managers sometimes leave a decision hanging."""
        return self.persona["drama_choice"] == "random" and self.rng.random() < 0.3


def run_simulation(
    engine: NarrativeEngine,
    persona: str = "diplomat",
    days: int = 90,
    seed: int | None = None,
    start: date = date(2026, 1, 5),
) -> SimulationReport:
    """
    Run the engine over ``days`` simulated days.

    The engine should be built with its own seeded rng; ``seed`` drives
    only the match results and the persona's coin flips.
    """
    rng = random.Random(seed)
    manager = AutoManager(persona, rng)
    report = SimulationReport(persona=persona, seed=seed, days=days)

    world = GameSnapshot(
        current_date=start,
        team_id="player-team",
        team_name="Aurora Five",
        players=[p.model_copy() for p in DEFAULT_ROSTER],
        rivalries={"t-vortex": 55, "t-ironclad": 30},
    )

    kickoff = _snapshot_for_day(world, start, 0, None)
    _run_conference(engine, manager, report, 0, kickoff, InterviewContext.KICKOFF)
    world = _carry(world, engine)

    for day in range(1, days + 1):
        today = start + timedelta(days=day)
        is_match_day = day % MATCH_EVERY_DAYS == 0
        opponent = OPPONENTS[(day // MATCH_EVERY_DAYS) % len(OPPONENTS)] if is_match_day else None
        snapshot = _snapshot_for_day(world, today, day, opponent)

        if is_match_day:
            _run_conference(engine, manager, report, day, snapshot, InterviewContext.PRE_MATCH)
            snapshot = _carry(snapshot, engine)

        result = engine.advance_narrative_state(snapshot)
        for event in result.drama_toasts + result.drama_modal_queue:
            report.record_event(day, event)
        for event in result.escalated:
            report.escalated += 1
            report.add(day, "escalated", event.title)
        for event in result.expired:
            report.expired += 1
            report.add(day, "expired", event.title)
        for toast in engine.get_active_drama_toasts():
            engine.dismiss_toast(toast.id)
        snapshot = _carry(snapshot, engine)

        _resolve_modals(engine, manager, report, day)
        snapshot = _carry(snapshot, engine)

        if is_match_day:
            snapshot = _play_match(snapshot, opponent, rng, report, day)
            _run_conference(engine, manager, report, day, snapshot, InterviewContext.POST_MATCH)
            snapshot = _carry(snapshot, engine)

        world = snapshot

    report.final = {
        "avg morale": round(sum(p.morale for p in world.players) / len(world.players), 1),
        "fanbase": world.fanbase,
        "hype": world.hype,
        "sponsor trust": world.sponsor_trust,
        "rivalries": dict(world.rivalries),
        "active flags": ", ".join(engine.state.flags) or "none",
    }
    return report


def _snapshot_for_day(world: GameSnapshot, today: date, day: int, opponent) -> GameSnapshot:
    tournament = TournamentContext(
        name="Spring Split",
        is_playoff=day >= PLAYOFFS_FROM_DAY,
        bracket="upper" if world.streak >= 0 else "lower",
        elimination_risk=day >= PLAYOFFS_FROM_DAY and world.streak < 0,
    )
    return world.model_copy(update={
        "current_date": today,
        "season_day": day,
        "tournament": tournament,
        "opponent_team_id": opponent[0] if opponent else None,
        "opponent_name": opponent[1] if opponent else None,
    })


def _carry(snapshot: GameSnapshot, engine: NarrativeEngine) -> GameSnapshot:
    """Fold the engine's effect-adjusted counters back into the world."""
    latest = engine.snapshot
    if latest is None:
        return snapshot
    return snapshot.model_copy(update={
        "players": latest.players,
        "fanbase": latest.fanbase,
        "hype": latest.hype,
        "sponsor_trust": latest.sponsor_trust,
        "chemistry": latest.chemistry,
        "rivalries": latest.rivalries,
    })


def _play_match(snapshot: GameSnapshot, opponent, rng: random.Random, report: SimulationReport, day: int) -> GameSnapshot:
    team_id, name, strength = opponent
    avg_morale = sum(p.morale for p in snapshot.players) / len(snapshot.players)
    win_chance = 0.5 + (avg_morale - 50) / 200 - (strength - 0.5)
    won = rng.random() < win_chance
    outcome = MatchOutcome.WIN if won else MatchOutcome.LOSS

    if won:
        streak = snapshot.streak + 1 if snapshot.streak > 0 else 1
    else:
        streak = snapshot.streak - 1 if snapshot.streak < 0 else -1

    report.record.append("W" if won else "L")
    report.add(day, "match", f"{'Win' if won else 'Loss'} vs {name} (streak {streak:+d})")
    return snapshot.model_copy(update={
        "streak": streak,
        "last_match": MatchResult(
            match_id=f"m{day}",
            opponent_team_id=team_id,
            outcome=outcome,
            is_upset=won and strength >= 0.55,
        ),
    })


def _run_conference(
    engine: NarrativeEngine,
    manager: AutoManager,
    report: SimulationReport,
    day: int,
    snapshot: GameSnapshot,
    context: InterviewContext,
) -> None:
    outcome = snapshot.last_match.outcome if context == InterviewContext.POST_MATCH and snapshot.last_match else None
    queue = engine.open_press_conference(
        snapshot,
        context,
        match_outcome=outcome,
        opponent_team_id=snapshot.opponent_team_id,
    )
    while queue:
        pending = queue[0]
        index = manager.pick_option(pending)
        result = engine.resolve_interview(pending, index, snapshot.current_date)
        if result is not None:
            report.tones[result.entry.chosen_tone.value] += 1
            report.add(day, "interview", f"{pending.template_id}: {result.entry.chosen_tone.value}")
            for event in result.chained_events:
                report.chained += 1
                report.record_event(day, event)
        shift = engine.shift_interview_queue()
        queue = engine.get_pending_interview_queue()
        if shift.follow_up:
            report.add(day, "interview", "crisis follow-up requested")

    _resolve_modals(engine, manager, report, day)


def _resolve_modals(engine: NarrativeEngine, manager: AutoManager, report: SimulationReport, day: int) -> None:
    for event in engine.get_active_events():
        if event.severity.value != "major" or manager.ignores_modal():
            continue
        template = engine.drama.templates.get(event.template_id)
        if template is None:
            continue
        today = engine.snapshot.current_date if engine.snapshot else None
        available = [
            c.id for c in template.choices
            if today is not None and all(engine.is_flag_active(f, today) for f in c.requires_flags)
        ]
        choice_id = manager.pick_choice(available)
        if choice_id is None:
            continue
        resolution = engine.resolve_drama_event(event.id, choice_id)
        if resolution is None:
            continue
        report.add(day, "decision", f"{event.title}: {choice_id}")
        if resolution.chained is not None:
            for chained in resolution.chained.new_events:
                report.chained += 1
                report.record_event(day, chained)

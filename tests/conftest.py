"""
Pytest fixtures for narrative engine tests.

Provides a deterministic random source, a sample roster snapshot and
factories for building small template catalogs inline.
"""

import pytest
from datetime import date
from pathlib import Path

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from narrative_engine.catalog import TemplateCatalog
from narrative_engine.config import default_config
from narrative_engine.engine import NarrativeEngine
from narrative_engine.state import EventBus, reset_event_bus
from narrative_engine.state.schema import (
    DramaEventTemplate,
    GameSnapshot,
    InterviewTemplate,
    NarrativeState,
    PlayerPersonality,
    PlayerSnapshot,
    TournamentContext,
)


class FixedRandom:
    """
    Random source with scripted output.

    ``random()`` walks ``values`` and then repeats the last one.
    ``choice()`` returns the element at ``pick`` (first by default).
    """

    def __init__(self, values=(0.0,), pick: int = 0):
        self.values = list(values) or [0.0]
        self.pick = pick
        self.calls = 0

    def random(self) -> float:
        value = self.values[min(self.calls, len(self.values) - 1)]
        self.calls += 1
        return value

    def choice(self, seq):
        return seq[min(self.pick, len(seq) - 1)]


@pytest.fixture(autouse=True)
def fresh_event_bus():
    """Each test starts with an empty global bus."""
    reset_event_bus()
    yield
    reset_event_bus()


@pytest.fixture
def always_rng():
    """Every roll passes; every choice takes the first item."""
    return FixedRandom([0.0])


@pytest.fixture
def never_rng():
    """Every roll below 100% fails."""
    return FixedRandom([0.999])


@pytest.fixture
def config():
    return default_config()


@pytest.fixture
def today():
    return date(2026, 3, 10)


@pytest.fixture
def roster():
    return [
        PlayerSnapshot(id="p1", name="Kairo", personality=PlayerPersonality.BIG_STAGE, morale=60, rating=84),
        PlayerSnapshot(id="p2", name="Vex", personality=PlayerPersonality.FAME_SEEKER, morale=45, rating=78),
        PlayerSnapshot(id="p3", name="Osk", personality=PlayerPersonality.INTROVERT, morale=55, rating=70,
                       is_import=True),
    ]


@pytest.fixture
def snapshot(today, roster):
    """Mid-season snapshot with a rival opponent up next."""
    return GameSnapshot(
        current_date=today,
        team_name="Aurora Five",
        players=roster,
        opponent_team_id="t-vortex",
        opponent_name="Vortex",
        rivalries={"t-vortex": 55, "t-ironclad": 20},
        tournament=TournamentContext(name="Spring Split", bracket="upper"),
        season_day=30,
    )


@pytest.fixture
def state():
    return NarrativeState()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def drama_template():
    """Factory for drama templates with test-friendly defaults."""
    def make(template_id="drama_test", category="team_synergy", severity="minor", **fields):
        data = {
            "id": template_id,
            "category": category,
            "severity": severity,
            "title": f"{template_id} title",
            "probability": 100,
        }
        if severity == "major" and "choices" not in fields:
            data["choices"] = [
                {"id": "accept", "text": "Accept", "effects": {"morale": 5}},
                {"id": "refuse", "text": "Refuse", "effects": {"morale": -5}},
            ]
        data.update(fields)
        return DramaEventTemplate.model_validate(data)
    return make


@pytest.fixture
def interview_template():
    """Factory for interview templates with three plain options."""
    def make(template_id="interview_test", context="POST_MATCH", **fields):
        data = {
            "id": template_id,
            "context": context,
            "prompt": f"{template_id} prompt",
            "options": [
                {"tone": "CONFIDENT", "label": "Confident", "effects": {"hype": 2}},
                {"tone": "HUMBLE", "label": "Humble", "effects": {"chemistry": 2}},
                {"tone": "DEFLECTIVE", "label": "Deflect"},
            ],
        }
        data.update(fields)
        return InterviewTemplate.model_validate(data)
    return make


@pytest.fixture
def make_engine(bus):
    """Build an engine over an inline catalog."""
    def make(drama=(), interviews=(), rng=None, config=None, state=None):
        return NarrativeEngine(
            catalog=TemplateCatalog(drama=list(drama), interviews=list(interviews)),
            rng=rng or FixedRandom([0.0]),
            config=config,
            state=state,
            bus=bus,
        )
    return make

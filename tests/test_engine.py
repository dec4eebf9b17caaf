"""
Tests for the NarrativeEngine facade.

End-to-end flows through the public surface: day advance, drama
decisions, press conferences, persistence and notifications.
"""

from datetime import date, timedelta

import pytest

from narrative_engine.state import EventType, MemoryNarrativeStore
from narrative_engine.state.schema import (
    DramaCategory,
    InterviewContext,
    InterviewSubject,
    MatchOutcome,
)

from conftest import FixedRandom


POST = InterviewContext.POST_MATCH


class TestDayAdvance:
    """advance_narrative_state and the drama UI surface."""

    def test_day_result_and_notifications(self, make_engine, drama_template, snapshot, bus):
        engine = make_engine(drama=[
            drama_template("dinner", effects={"chemistry": 5}),
            drama_template("standoff", category="player_ego", severity="major"),
        ])
        day = engine.advance_narrative_state(snapshot)

        assert [e.template_id for e in day.drama_toasts] == ["dinner"]
        assert [e.template_id for e in day.drama_modal_queue] == ["standoff"]
        assert day.has_events
        assert engine.snapshot.chemistry == 55
        assert len(bus.get_history(EventType.DRAMA_TRIGGERED)) == 2
        assert len(bus.get_history(EventType.DAY_ADVANCED)) == 1

    def test_toasts_dismissed(self, make_engine, drama_template, snapshot):
        engine = make_engine(drama=[drama_template("dinner")])
        engine.advance_narrative_state(snapshot)

        toast = engine.get_active_drama_toasts()[0]
        assert engine.dismiss_toast(toast.id)
        assert not engine.dismiss_toast(toast.id)
        assert engine.get_active_drama_toasts() == []
        assert engine.get_event_history()[0].id == toast.id

    def test_active_major_event(self, make_engine, drama_template, snapshot):
        engine = make_engine(drama=[drama_template("standoff", category="player_ego", severity="major")])
        assert engine.get_active_major_event() is None

        engine.advance_narrative_state(snapshot)
        assert engine.get_active_major_event().template_id == "standoff"

    def test_state_is_detached(self, make_engine, drama_template, snapshot):
        engine = make_engine(drama=[drama_template("dinner")])
        engine.advance_narrative_state(snapshot)

        copy = engine.state
        copy.event_history.clear()
        assert len(engine.state.event_history) == 1

    def test_igl_cooldown_through_engine(self, make_engine, drama_template, snapshot):
        """igl_crisis fires on day 5; nothing new in the category on day 6."""
        engine = make_engine(drama=[
            drama_template("igl_whispers", category="igl_crisis"),
            drama_template("igl_leak", category="igl_crisis"),
        ])
        day5 = date(2026, 1, 5)

        first = engine.advance_narrative_state(snapshot.model_copy(update={"current_date": day5}))
        second = engine.advance_narrative_state(
            snapshot.model_copy(update={"current_date": day5 + timedelta(days=1)})
        )

        assert len(first.drama_toasts) == 1
        assert not second.has_events
        assert engine.state.cooldowns[DramaCategory.IGL_CRISIS] == day5


class TestDramaDecisions:
    """resolve_drama_event is all-or-nothing and idempotent."""

    @pytest.fixture
    def engine_with_modal(self, make_engine, drama_template, snapshot):
        engine = make_engine(drama=[drama_template(
            "standoff",
            category="player_ego",
            severity="major",
            choices=[
                {"id": "back", "text": "Back them", "effects": {
                    "morale": 5, "sets_flags": [{"key": "igl_backed", "duration_days": 21}],
                }},
                {"id": "bad", "text": "Broken", "effects": {"target_player_ids": ["p99"], "morale": 1}},
            ],
        )])
        engine.advance_narrative_state(snapshot)
        return engine

    def test_resolve(self, engine_with_modal, snapshot, bus, today):
        event = engine_with_modal.get_active_major_event()
        resolution = engine_with_modal.resolve_drama_event(event.id, "back")

        assert resolution.event.chosen_option_id == "back"
        assert engine_with_modal.get_active_major_event() is None
        assert engine_with_modal.is_flag_active("igl_backed", today)
        assert engine_with_modal.snapshot.player("p1").morale == 65
        assert len(bus.get_history(EventType.DRAMA_RESOLVED)) == 1
        assert [e.data["key"] for e in bus.get_history(EventType.FLAG_SET)] == ["igl_backed"]

    def test_resolving_twice_is_a_noop(self, engine_with_modal):
        """The second call changes nothing and returns None."""
        event = engine_with_modal.get_active_major_event()
        engine_with_modal.resolve_drama_event(event.id, "back")
        after_first = engine_with_modal.serialize()

        assert engine_with_modal.resolve_drama_event(event.id, "back") is None
        assert engine_with_modal.serialize() == after_first

    def test_malformed_choice_rolls_back(self, engine_with_modal, bus):
        event = engine_with_modal.get_active_major_event()
        before = engine_with_modal.serialize()

        assert engine_with_modal.resolve_drama_event(event.id, "bad") is None
        assert engine_with_modal.serialize() == before
        assert bus.get_history(EventType.DRAMA_RESOLVED) == []

    def test_resolve_before_any_snapshot(self, make_engine):
        assert make_engine().resolve_drama_event("abc", "x") is None


class TestPressConferences:
    """Queue lifecycle and chained consequences."""

    def test_drama_chance_hundred_triggers_exactly_one(
        self, make_engine, interview_template, drama_template, snapshot, today,
    ):
        """An answer with drama_chance 100 adds one event, and chains stop there."""
        engine = make_engine(
            interviews=[interview_template("blame", options=[
                {"tone": "BLAME_TEAM", "label": "Their fault", "effects": {"drama_chance": 100}},
                {"tone": "BLAME_SELF", "label": "My fault"},
                {"tone": "DEFLECTIVE", "label": "It happens"},
            ])],
            drama=[
                drama_template("fallout", category="team_synergy", probability=1,
                               effects={"drama_chance": 100}),
                drama_template("rumour", category="meta_rumors", probability=1),
            ],
        )
        pending = engine.open_press_conference(snapshot, POST, force=True)[0]
        result = engine.resolve_interview(pending, 0, today)

        assert len(result.chained_events) == 1
        assert result.chained_events[0].chain_depth == 1
        assert engine.state.total_events_triggered == 1

    def test_no_conference_when_odds_fail(self, make_engine, interview_template, snapshot):
        engine = make_engine(interviews=[interview_template()], rng=FixedRandom([0.99]))
        assert engine.open_press_conference(snapshot, POST) == []

    def test_conference_refused_while_queue_pending(self, make_engine, interview_template, snapshot):
        engine = make_engine(interviews=[interview_template("a"), interview_template("b")])
        assert len(engine.open_press_conference(snapshot, POST, force=True)) == 2
        assert engine.open_press_conference(snapshot, POST, force=True) == []

    def test_pre_match_completion_advances_day(self, make_engine, interview_template, snapshot, today):
        engine = make_engine(interviews=[interview_template("pre", context="PRE_MATCH")])
        pending = engine.open_press_conference(snapshot, InterviewContext.PRE_MATCH)[0]
        engine.resolve_interview(pending, 1, today)

        shift = engine.shift_interview_queue()
        assert shift.removed.template_id == "pre"
        assert shift.conference_complete
        assert shift.advance_day
        assert engine.get_pending_interview_queue() == []

    def test_post_match_crisis_follow_up(self, make_engine, interview_template, snapshot, bus):
        """A finished post-match conference during a slump queues a crisis question."""
        engine = make_engine(interviews=[
            interview_template("post_loss", match_outcome="loss"),
            interview_template("crisis_losing", context="CRISIS", condition="loss_streak_3plus"),
        ])
        slump = snapshot.model_copy(update={"streak": -3})
        engine.open_press_conference(slump, POST, match_outcome=MatchOutcome.LOSS)

        shift = engine.shift_interview_queue()

        assert shift.conference_complete
        assert not shift.advance_day
        assert [p.template_id for p in shift.follow_up] == ["crisis_losing"]
        assert [p.template_id for p in engine.get_pending_interview_queue()] == ["crisis_losing"]
        assert len(bus.get_history(EventType.PRESS_CONFERENCE_COMPLETE)) == 1

    def test_no_follow_up_without_crisis(self, make_engine, interview_template, snapshot):
        engine = make_engine(interviews=[
            interview_template("post_loss", match_outcome="loss"),
            interview_template("crisis_generic", context="CRISIS"),
        ])
        engine.open_press_conference(snapshot, POST, match_outcome=MatchOutcome.LOSS)
        assert engine.shift_interview_queue().follow_up == []

    def test_malformed_answer_rolls_back(self, make_engine, interview_template, snapshot, today):
        engine = make_engine(interviews=[interview_template("broken", options=[
            {"tone": "CONFIDENT", "label": "x", "effects": {"morale": 3, "target_player_ids": ["p99"]}},
            {"tone": "HUMBLE", "label": "y"},
            {"tone": "DEFLECTIVE", "label": "z"},
        ])])
        pending = engine.open_press_conference(snapshot, POST, force=True)[0]

        assert engine.resolve_interview(pending, 0, today) is None
        assert engine.get_interview_history() == []
        assert engine.get_pending_interview_queue()[0].chosen_index is None
        # the same interview can still be answered properly
        assert engine.resolve_interview(pending, 1, today) is not None

    def test_trash_talk_remembered(self, make_engine, interview_template, snapshot, today):
        engine = make_engine(interviews=[interview_template("pre_rival", context="PRE_MATCH", options=[
            {"tone": "TRASH_TALK", "label": "Coming for you"},
            {"tone": "RESPECTFUL", "label": "Respect"},
            {"tone": "DEFLECTIVE", "label": "No comment"},
        ])])
        pending = engine.open_press_conference(
            snapshot, InterviewContext.PRE_MATCH, opponent_team_id="t-vortex", force=True,
        )[0]
        engine.resolve_interview(pending, 0, today)

        assert engine.had_trash_talk_before("t-vortex")
        assert not engine.had_trash_talk_before("t-ironclad")

    def test_player_conference(self, make_engine, interview_template, snapshot):
        engine = make_engine(interviews=[interview_template("player_q", subject_type="player")])
        queue = engine.open_press_conference(
            snapshot, POST, subject_type=InterviewSubject.PLAYER, subject_id="p2", force=True,
        )
        assert queue[0].subject_id == "p2"


class TestScorchedEarth:
    """A trash-talk answer gates content until the flag lapses."""

    @pytest.fixture
    def catalog(self, interview_template, drama_template):
        return {
            "interviews": [interview_template("post_win_rival", options=[
                {"tone": "TRASH_TALK", "label": "Not our level", "effects": {
                    "sets_flags": [{"key": "rivalry_scorched_earth", "duration_days": 30}],
                }},
                {"tone": "RESPECTFUL", "label": "Respect"},
                {"tone": "CONFIDENT", "label": "Next"},
            ])],
            "drama": [drama_template(
                "flamewar", category="external_pressure", requires_active_flag="rivalry_scorched_earth",
            )],
        }

    def test_flag_window_gates_drama(self, make_engine, catalog, snapshot):
        day10 = date(2026, 1, 10)
        engine = make_engine(**catalog)
        on_day10 = snapshot.model_copy(update={"current_date": day10})
        pending = engine.open_press_conference(on_day10, POST, force=True)[0]
        engine.resolve_interview(pending, 0, day10)
        engine.shift_interview_queue()

        assert engine.is_flag_active("rivalry_scorched_earth", day10 + timedelta(days=25))
        assert not engine.is_flag_active("rivalry_scorched_earth", day10 + timedelta(days=30))
        assert engine.flag_ever_set("rivalry_scorched_earth")

        # Firing puts the category on cooldown, so each day runs on its own copy
        blob = engine.serialize()

        day39 = engine.advance_narrative_state(
            snapshot.model_copy(update={"current_date": day10 + timedelta(days=29)})
        )
        assert [e.template_id for e in day39.drama_toasts] == ["flamewar"]

        later = make_engine(**catalog)
        assert later.restore(blob)
        day40 = later.advance_narrative_state(
            snapshot.model_copy(update={"current_date": day10 + timedelta(days=30)})
        )
        assert not day40.has_events

    def test_gated_content_fires_mid_window(self, make_engine, catalog, snapshot):
        day10 = date(2026, 1, 10)
        engine = make_engine(**catalog)
        assert not engine.advance_narrative_state(snapshot.model_copy(update={"current_date": day10})).has_events

        pending = engine.open_press_conference(snapshot.model_copy(update={"current_date": day10}), POST, force=True)[0]
        engine.resolve_interview(pending, 0, day10)
        engine.shift_interview_queue()

        day35 = engine.advance_narrative_state(
            snapshot.model_copy(update={"current_date": day10 + timedelta(days=25)})
        )
        assert [e.template_id for e in day35.drama_toasts] == ["flamewar"]


class TestPersistence:
    """serialize / restore and store-backed save slots."""

    def test_round_trip(self, make_engine, drama_template, snapshot):
        engine = make_engine(drama=[drama_template("standoff", category="player_ego", severity="major")])
        engine.advance_narrative_state(snapshot)
        blob = engine.serialize()

        other = make_engine(drama=[drama_template("standoff", category="player_ego", severity="major")])
        assert other.restore(blob)
        assert other.get_active_major_event().id == engine.get_active_major_event().id
        assert blob["last_event_by_category"] == {"player_ego": snapshot.current_date.isoformat()}

    def test_legacy_blob_migrated(self, make_engine, today):
        """camelCase keys and bare-date flags from old saves load cleanly."""
        engine = make_engine()
        assert engine.restore({
            "activeFlags": {"team_identity_resilient": "2026-01-01"},
            "lastEventByCategory": {"igl_crisis": "2026-01-05", "retired_category": "2026-01-01"},
        })

        state = engine.state
        assert state.flags["team_identity_resilient"].expires_date is None
        assert engine.is_flag_active("team_identity_resilient", today)
        assert state.cooldowns == {DramaCategory.IGL_CRISIS: date(2026, 1, 5)}
        assert state.active_events == []

    def test_legacy_blob_with_events(self, make_engine):
        engine = make_engine()
        assert engine.restore({"eventHistory": [{
            "id": "a1", "templateId": "t", "category": "igl_crisis", "severity": "major",
            "status": "resolved", "triggeredDate": "2026-01-01",
        }]})

        [event] = engine.get_event_history()
        assert event.id == "a1"
        assert event.template_id == "t"
        assert event.triggered_date == date(2026, 1, 1)

    def test_event_history_newest_first(self, make_engine, drama_template, snapshot):
        engine = make_engine(drama=[drama_template("dinner", category="team_synergy")])
        for offset in (0, 10, 20):
            engine.advance_narrative_state(
                snapshot.model_copy(update={"current_date": snapshot.current_date + timedelta(days=offset)})
            )

        dates = [e.triggered_date for e in engine.get_event_history(limit=2)]
        assert dates == [snapshot.current_date + timedelta(days=20), snapshot.current_date + timedelta(days=10)]
        assert len(engine.get_event_history()) == 3

    def test_history_limit_trims_on_commit(self, make_engine, drama_template, snapshot, config):
        config["history_limit"] = 2
        engine = make_engine(drama=[drama_template("dinner", category="team_synergy")], config=config)
        for offset in range(0, 50, 10):
            engine.advance_narrative_state(
                snapshot.model_copy(update={"current_date": snapshot.current_date + timedelta(days=offset)})
            )

        assert [e.triggered_date for e in engine.state.event_history] == [
            snapshot.current_date + timedelta(days=30), snapshot.current_date + timedelta(days=40),
        ]

    def test_bad_blob_rejected(self, make_engine, drama_template, snapshot):
        engine = make_engine(drama=[drama_template("dinner")])
        engine.advance_narrative_state(snapshot)
        before = engine.serialize()

        assert not engine.restore({"active_events": [{"bogus": True}]})
        assert engine.serialize() == before

    def test_store_slots(self, make_engine, drama_template, snapshot, bus):
        store = MemoryNarrativeStore()
        engine = make_engine(drama=[drama_template("dinner")])
        engine.advance_narrative_state(snapshot)
        engine.save(store, "slot1")

        fresh = make_engine()
        assert fresh.load(store, "slot1")
        assert len(fresh.get_event_history()) == 1
        assert not fresh.load(store, "missing")
        assert len(bus.get_history(EventType.STATE_RESTORED)) == 1

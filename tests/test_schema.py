"""Tests for state and template models."""

from datetime import date

import pytest
from pydantic import ValidationError

from narrative_engine.state.schema import (
    DramaCategory,
    DramaEventInstance,
    DramaEventStatus,
    DramaEventTemplate,
    GameSnapshot,
    InterviewTemplate,
    InterviewTone,
    NarrativeState,
    PlayerSnapshot,
)


class TestTemplates:
    """Template validation rules."""

    def test_major_needs_two_or_three_choices(self, drama_template):
        one = [{"id": "a", "text": "A"}]
        four = [{"id": c, "text": c} for c in "abcd"]
        with pytest.raises(ValidationError):
            drama_template(severity="major", choices=one)
        with pytest.raises(ValidationError):
            drama_template(severity="major", choices=four)
        assert len(drama_template(severity="major").choices) == 2

    def test_minor_needs_no_choices(self, drama_template):
        assert drama_template().choices == []

    @pytest.mark.parametrize("probability", [-1, 100.5])
    def test_probability_range(self, drama_template, probability):
        with pytest.raises(ValidationError):
            drama_template(probability=probability)

    def test_interview_needs_exactly_three_options(self, interview_template):
        with pytest.raises(ValidationError):
            interview_template(options=[{"tone": "HUMBLE", "label": "x"}])

    def test_condition_defaults_to_always(self):
        template = DramaEventTemplate.model_validate({
            "id": "t", "category": "breakthrough", "severity": "minor", "title": "T", "probability": 5,
        })
        assert template.condition.name == "always"

    def test_choice_lookup(self, drama_template):
        template = drama_template(severity="major")
        assert template.choice("refuse").effects.morale == -5
        assert template.choice("missing") is None

    def test_interview_context_by_value(self):
        template = InterviewTemplate.model_validate({
            "id": "k", "context": "KICKOFF", "prompt": "Goals?",
            "options": [{"tone": t, "label": t} for t in ("CONFIDENT", "HUMBLE", "DEFLECTIVE")],
        })
        assert template.context.value == "KICKOFF"


class TestInstances:
    def test_age_and_ids(self):
        a = DramaEventInstance(template_id="x", category="breakthrough", severity="minor",
                               triggered_date=date(2026, 3, 1))
        b = DramaEventInstance(template_id="x", category="breakthrough", severity="minor",
                               triggered_date=date(2026, 3, 1))
        assert a.age(date(2026, 3, 6)) == 5
        assert a.is_active
        assert len(a.id) == 8
        assert a.id != b.id


class TestStateMigration:
    """Older save formats load into the current model."""

    def test_empty_blob(self):
        state = NarrativeState.model_validate({})
        assert state.flags == {}
        assert state.interview_queue == []

    def test_camel_case_keys(self):
        state = NarrativeState.model_validate({
            "activeEvents": [{
                "template_id": "x", "category": "visa_arc", "severity": "major",
                "triggered_date": "2026-02-01",
            }],
            "pendingInterviews": [],
        })
        assert state.active_events[0].category == DramaCategory.VISA_ARC

    def test_string_flags_become_permanent(self):
        state = NarrativeState.model_validate({"flags": {"crisis_active": "2026-02-01"}})
        flag = state.flags["crisis_active"]
        assert flag.set_date == date(2026, 2, 1)
        assert flag.expires_date is None

    def test_camel_case_flag_fields(self):
        state = NarrativeState.model_validate({
            "activeFlags": {"igl_backed": {"setDate": "2026-02-01", "expiresDate": "2026-02-22"}},
        })
        assert state.flags["igl_backed"].expires_date == date(2026, 2, 22)

    def test_last_event_by_category_backfills_cooldowns(self):
        """Unknown categories are dropped; existing cooldowns win."""
        state = NarrativeState.model_validate({
            "cooldowns": {"visa_arc": "2026-03-01"},
            "last_event_by_category": {
                "visa_arc": "2026-01-01",
                "igl_crisis": "2026-02-10",
                "retired": "2026-02-10",
            },
        })
        assert state.cooldowns == {
            DramaCategory.VISA_ARC: date(2026, 3, 1),
            DramaCategory.IGL_CRISIS: date(2026, 2, 10),
        }
        assert state.last_event_by_category == state.cooldowns

    def test_camel_case_event_entries(self):
        state = NarrativeState.model_validate({
            "eventHistory": [{
                "id": "a1", "templateId": "t", "category": "igl_crisis", "severity": "major",
                "status": "resolved", "triggeredDate": "2026-01-01", "resolvedDate": "2026-01-03",
                "chosenOptionId": "back_igl", "affectedPlayerIds": ["p1"],
                "appliedEffects": [{"type": "morale", "delta": 5}],
                "escalatedToEventId": None,
            }],
            "activeEvents": [{
                "id": "b2", "templateId": "v", "category": "visa_arc", "severity": "major",
                "status": "pending", "triggeredDate": "2026-01-05",
            }],
        })

        resolved = state.event_history[0]
        assert resolved.template_id == "t"
        assert resolved.triggered_date == date(2026, 1, 1)
        assert resolved.resolved_date == date(2026, 1, 3)
        assert resolved.chosen_option_id == "back_igl"
        assert resolved.affected_player_ids == ["p1"]
        assert resolved.applied_effects is None
        assert state.active_events[0].status == DramaEventStatus.ACTIVE

    def test_camel_case_interview_and_log_entries(self):
        state = NarrativeState.model_validate({
            "interviewHistory": [{
                "date": "2026-01-02", "templateId": "post_win", "context": "POST_MATCH",
                "chosenTone": "HUMBLE", "effects": {"sponsorTrust": 2}, "opponentTeamId": "t-vortex",
            }],
            "flag_log": [{"date": "2026-01-02", "key": "igl_backed", "action": "set", "expiresDate": "2026-01-20"}],
        })

        entry = state.interview_history[0]
        assert entry.chosen_tone == InterviewTone.HUMBLE
        assert entry.effects.sponsor_trust == 2
        assert entry.opponent_team_id == "t-vortex"
        assert state.flag_log[0].expires_date == date(2026, 1, 20)

    def test_current_blob_round_trips_unchanged(self):
        state = NarrativeState.model_validate({
            "event_history": [{
                "template_id": "t", "category": "igl_crisis", "severity": "minor",
                "status": "resolved", "triggered_date": "2026-01-01",
            }],
        })
        blob = state.model_dump(mode="json")
        assert NarrativeState.model_validate(blob).model_dump(mode="json") == blob


class TestSnapshotIds:
    """Ids become one segment of a flag key, so they may not contain '_'."""

    def test_player_id_with_underscore_rejected(self):
        with pytest.raises(ValidationError):
            PlayerSnapshot(id="pl_1", name="Kairo")

    def test_empty_player_id_rejected(self):
        with pytest.raises(ValidationError):
            PlayerSnapshot(id="", name="Kairo")

    def test_team_ids_checked(self):
        with pytest.raises(ValidationError):
            GameSnapshot(current_date=date(2026, 3, 1), opponent_team_id="t_vortex")
        snapshot = GameSnapshot(current_date=date(2026, 3, 1), opponent_team_id="t-vortex")
        assert snapshot.opponent_team_id == "t-vortex"
        assert PlayerSnapshot(id="p-1", name="Kairo").id == "p-1"

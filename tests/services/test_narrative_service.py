"""Tests for narrative rendering against the shipped scripts."""

import pytest

from cadence.core.exceptions import RuleTableError
from cadence.domain.models.narrative import LineStyle, NarrativeLine, RuleTable
from cadence.domain.models.responses import ResponseMap
from cadence.domain.models.scene import Scene
from cadence.services.narrative_service import (
    MISSING_VALUE,
    build_facts,
    render_template,
)


def texts(blocks):
    return [line.text for block in blocks for line in block.lines]


@pytest.fixture
def casual_racer():
    return ResponseMap(
        {
            "runner_type": "casual",
            "goal_type": "race",
            "race_distance": "half_marathon",
            "race_target_time": "yes",
            "race_target_time_value": "sub-1:50",
            "available_days": "4-5",
            "preferred_time": "morning",
            "past_injuries": ["shin_splints"],
            "current_pain": "no",
            "recovery_style": "push_through",
            "sleep": "bad",
            "stress": "survival",
            "coaching_voice": "analytical",
            "biggest_challenge": "pacing",
            "data_orientation": "data_driven",
        }
    )


class TestBuildFacts:
    def test_derived_facts(self):
        facts = build_facts(ResponseMap({"sleep": "bad"}), "Sam", "strava")
        assert facts == {"sleep": "bad", "name": "Sam", "has_wearable": True, "provider": "strava"}

    def test_no_provider(self):
        facts = build_facts({"sleep": "bad"}, "there")
        assert facts["has_wearable"] is False
        assert "provider" not in facts


class TestRenderTemplate:
    def test_selections_joined(self):
        assert render_template("Injuries: {past_injuries}", {"past_injuries": ("a", "b")}) == (
            "Injuries: a, b"
        )

    def test_missing_value(self):
        assert render_template("Target: {race_target_time_value}", {}) == f"Target: {MISSING_VALUE}"


class TestRuleTable:
    def test_first_match_wins(self):
        table = RuleTable(
            name="t",
            rules=[
                {"when": {"eq": ["sleep", "bad"]}, "lines": ["rough"]},
                {"when": {"in": ["sleep", ["bad", "inconsistent"]]}, "lines": ["patchy"]},
                {"lines": ["fine"]},
            ],
        )
        assert [l.text for l in table.select({"sleep": "bad"})] == ["rough"]
        assert [l.text for l in table.select({"sleep": "inconsistent"})] == ["patchy"]
        assert [l.text for l in table.select({})] == ["fine"]

    def test_no_match_without_fallback(self):
        table = RuleTable(name="t", rules=[{"when": {"eq": ["sleep", "bad"]}, "lines": ["x"]}])
        with pytest.raises(RuleTableError):
            table.select({})

    def test_plain_string_lines(self):
        line = NarrativeLine.model_validate("Got it.")
        assert line.text == "Got it."
        assert line.pause_after_ms is None


class TestScenes:
    def test_welcome_intro_uses_name(self, narrative_service):
        blocks = narrative_service.render_scene(Scene.WELCOME_INTRO, build_facts({}, "Sam"))
        assert blocks[0].style == LineStyle.WELCOME
        assert texts(blocks)[0] == "Welcome Sam"
        assert blocks[0].lines[0].pause_after_ms == 600

    def test_every_scene_renders_lines_with_no_answers(self, narrative_service):
        facts = build_facts({}, "there")
        for scene in Scene:
            if scene is Scene.QUESTIONS:
                continue
            blocks = narrative_service.render_scene(scene, facts)
            assert all(block.lines for block in blocks), scene

    def test_thinking_stream_without_wearable(self, narrative_service, casual_racer):
        lines = texts(narrative_service.render_scene(Scene.THINKING_STREAM, build_facts(casual_racer, "Sam")))
        assert lines[0] == "Let me work with what you've told me."
        assert "No wearable connected. Working from conversation data only." in lines
        assert "Target time: sub-1:50" in lines
        assert "⚠ Past injuries: shin_splints" in lines

    def test_thinking_stream_with_wearable(self, narrative_service, casual_racer):
        facts = build_facts(casual_racer, "Sam", "strava")
        lines = texts(narrative_service.render_scene(Scene.THINKING_STREAM, facts))
        assert lines[0] == "Got your data. Let me take a look."
        assert "Loading training history from strava..." in lines

    def test_recovery_wording_for_sleep_and_stress(self, narrative_service, casual_racer):
        lines = texts(
            narrative_service.render_scene(Scene.COACHING_RESPONSE, build_facts(casual_racer, "Sam"))
        )
        assert lines[0] == "Okay Sam, here's what I see."
        assert any(line.startswith("Your sleep is rough and stress is in survival mode.") for line in lines)

    def test_optional_tables_are_left_out(self, narrative_service):
        facts = build_facts({"runner_type": "beginner", "sleep": "solid", "stress": "low"}, "Sam")
        lines = texts(narrative_service.render_scene(Scene.COACHING_RESPONSE, facts))
        assert len(lines) == 2

    def test_same_facts_same_content(self, narrative_service, casual_racer):
        facts = build_facts(casual_racer, "Sam")
        first = narrative_service.render_scene(Scene.SYNTHESIS, facts)
        second = narrative_service.render_scene(Scene.SYNTHESIS, build_facts(casual_racer.copy(), "Sam"))
        assert first == second


class TestReactions:
    def test_cross_section_reaction(self, narrative_service, questionnaire):
        goals = questionnaire.sections[1]
        facts = build_facts({"runner_type": "beginner", "goal_type": "race", "race_distance": "5k"}, "Sam")
        lines = narrative_service.render_reaction(goals, facts)
        assert lines[0].text.startswith("A first 5K.")

    def test_reaction_fallback(self, narrative_service, questionnaire):
        mental = questionnaire.sections[5]
        lines = narrative_service.render_reaction(mental, build_facts({}, "Sam"))
        assert lines[0].text == "I've got a clear picture now. Let me put this all together."

    def test_welcome_back_message(self, narrative_service):
        assert narrative_service.welcome_back_message == "Welcome back! Picking up where you left off."

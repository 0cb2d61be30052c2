"""Tests for question graph resolution and progress."""

from cadence.domain.models.flow_phase import QuestionPhase, SectionIntro, SectionReaction
from cadence.domain.models.responses import ResponseMap
from cadence.services.progress import calculate_progress
from cadence.services.question_graph import (
    next_question_index,
    phase_after_answer,
    previous_phase,
    resume_phase,
    visible_questions,
)


def ids(questions):
    return [q.id for q in questions]


class TestVisibility:
    def test_branch_hidden_until_answered(self, small_questionnaire):
        alpha = small_questionnaire.sections[0]
        assert ids(visible_questions(alpha, {})) == ["a", "c"]
        assert ids(visible_questions(alpha, {"a": "yes"})) == ["a", "b", "c"]
        assert ids(visible_questions(alpha, {"a": "no"})) == ["a", "c"]

    def test_runner_type_branches(self, questionnaire):
        profile = questionnaire.sections[0]
        assert ids(visible_questions(profile, {"runner_type": "casual"})) == [
            "runner_type",
            "casual_frequency",
            "casual_volume",
            "casual_pace",
        ]
        assert ids(visible_questions(profile, {"runner_type": "beginner"})) == [
            "runner_type",
            "beginner_duration",
            "beginner_frequency",
        ]

    def test_two_level_condition(self, questionnaire):
        goals = questionnaire.sections[1]
        race = {"goal_type": "race", "race_target_time": "just_finish"}
        assert "race_target_time_value" not in ids(visible_questions(goals, race))
        race["race_target_time"] = "yes"
        assert "race_target_time_value" in ids(visible_questions(goals, race))


class TestReanchoring:
    """The next question is found by id in the recomputed list."""

    def test_answer_reveals_follow_up(self, small_questionnaire):
        alpha = small_questionnaire.sections[0]
        assert next_question_index(alpha, {"a": "yes"}, "a") == 1  # b

    def test_answer_hides_follow_up(self, small_questionnaire):
        alpha = small_questionnaire.sections[0]
        assert next_question_index(alpha, {"a": "no"}, "a") == 1  # c, b is gone

    def test_last_visible_question_ends_section(self, small_questionnaire):
        alpha = small_questionnaire.sections[0]
        assert next_question_index(alpha, {"a": "yes", "c": ("x",)}, "c") is None

    def test_hidden_answered_question_falls_forward(self, small_questionnaire):
        alpha = small_questionnaire.sections[0]
        # b was answered, then a flipped to no: continue at the next visible after b
        responses = {"a": "no", "b": "text"}
        assert next_question_index(alpha, responses, "b") == 1
        assert ids(visible_questions(alpha, responses))[1] == "c"

    def test_back_edit_uses_new_visible_list(self, questionnaire):
        """Changing runner_type from casual to beginner lands on the beginner branch."""
        profile = questionnaire.sections[0]
        responses = {
            "runner_type": "beginner",
            "casual_frequency": "3-4",
            "casual_volume": "20-40k",
        }
        j = next_question_index(profile, responses, "runner_type")
        assert visible_questions(profile, responses)[j].id == "beginner_duration"

    def test_phase_after_answer(self, small_questionnaire):
        assert phase_after_answer(small_questionnaire, 0, {"a": "yes"}, "a") == QuestionPhase(
            section_index=0, question_index=1
        )
        assert phase_after_answer(small_questionnaire, 1, {"d": "5:30"}, "d") == SectionReaction(
            section_index=1
        )


class TestBackEdges:
    def test_question_to_previous_question(self, small_questionnaire):
        phase = QuestionPhase(section_index=0, question_index=2)
        assert previous_phase(small_questionnaire, {"a": "yes"}, phase) == QuestionPhase(
            section_index=0, question_index=1
        )

    def test_first_question_to_intro(self, small_questionnaire):
        phase = QuestionPhase(section_index=1, question_index=0)
        assert previous_phase(small_questionnaire, {}, phase) == SectionIntro(section_index=1)

    def test_intro_to_previous_reaction(self, small_questionnaire):
        assert previous_phase(small_questionnaire, {}, SectionIntro(section_index=1)) == (
            SectionReaction(section_index=0)
        )

    def test_first_intro_has_no_back(self, small_questionnaire):
        assert previous_phase(small_questionnaire, {}, SectionIntro(section_index=0)) is None

    def test_reaction_to_last_visible_question(self, small_questionnaire):
        reaction = SectionReaction(section_index=0)
        assert previous_phase(small_questionnaire, {"a": "yes"}, reaction) == QuestionPhase(
            section_index=0, question_index=2
        )
        assert previous_phase(small_questionnaire, {"a": "no"}, reaction) == QuestionPhase(
            section_index=0, question_index=1
        )


class TestResumePhase:
    def test_first_unanswered_visible(self, small_questionnaire):
        assert resume_phase(small_questionnaire, {"a": "no"}) == QuestionPhase(
            section_index=0, question_index=1
        )

    def test_next_section(self, small_questionnaire):
        responses = {"a": "no", "c": ["x"]}
        assert resume_phase(small_questionnaire, responses) == QuestionPhase(
            section_index=1, question_index=0
        )

    def test_all_answered(self, small_questionnaire):
        responses = {"a": "no", "c": ["x"], "d": "skip"}
        assert resume_phase(small_questionnaire, responses) is None


class TestProgress:
    def test_starts_at_zero(self, small_questionnaire):
        assert calculate_progress(small_questionnaire, {}, SectionIntro(section_index=0)) == 0.0

    def test_counts_position_in_current_section(self, small_questionnaire):
        responses = {"a": "yes"}
        phase = QuestionPhase(section_index=0, question_index=2)
        assert calculate_progress(small_questionnaire, responses, phase) == 0.5

    def test_reaction_counts_whole_section(self, small_questionnaire):
        responses = {"a": "yes", "b": "x", "c": ["x"]}
        phase = SectionReaction(section_index=0)
        assert calculate_progress(small_questionnaire, responses, phase) == 0.75

    def test_full_only_at_last_reaction(self, small_questionnaire):
        responses = ResponseMap({"a": "yes", "b": "x", "c": ["x"], "d": "5:30"})
        last_question = QuestionPhase(section_index=1, question_index=0)
        assert calculate_progress(small_questionnaire, responses, last_question) < 1.0
        assert calculate_progress(small_questionnaire, responses, SectionReaction(section_index=1)) == 1.0

    def test_forward_walk_never_decreases(self, small_questionnaire):
        walk = [
            ({}, SectionIntro(section_index=0)),
            ({}, QuestionPhase(section_index=0, question_index=0)),
            ({"a": "yes"}, QuestionPhase(section_index=0, question_index=1)),
            ({"a": "yes", "b": "x"}, QuestionPhase(section_index=0, question_index=2)),
            ({"a": "yes", "b": "x", "c": ["y"]}, SectionReaction(section_index=0)),
            ({"a": "yes", "b": "x", "c": ["y"]}, SectionIntro(section_index=1)),
            ({"a": "yes", "b": "x", "c": ["y"]}, QuestionPhase(section_index=1, question_index=0)),
            ({"a": "yes", "b": "x", "c": ["y"], "d": "skip"}, SectionReaction(section_index=1)),
        ]
        values = [calculate_progress(small_questionnaire, r, p) for r, p in walk]
        assert values == sorted(values)
        assert values[-1] == 1.0
        assert all(0.0 <= v <= 1.0 for v in values)

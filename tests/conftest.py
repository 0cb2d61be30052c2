"""
Shared test fixtures.

Most flow tests run with the instant timing profile so every delay is a
single event-loop turn; `await flow.settle()` then runs the machine until it
needs input.
"""

import copy

import pytest

from cadence.core.config import TimingConfig
from cadence.core.narrative_loader import load_narrative
from cadence.core.questionnaire_loader import load_questionnaire, validate_questionnaire
from cadence.domain.models.questionnaire import SKIP_VALUE, InputKind, Questionnaire
from cadence.services.narrative_service import NarrativeService

# Two sections: "b" only shows when a == yes; "d" is a skippable pace question
SMALL_QUESTIONNAIRE = {
    "sections": [
        {
            "id": "alpha",
            "name": "Alpha",
            "intro": "Alpha intro.",
            "questions": [
                {
                    "id": "a",
                    "prompt": "A?",
                    "input_kind": "single-select",
                    "options": [
                        {"label": "Yes", "value": "yes"},
                        {"label": "No", "value": "no"},
                    ],
                },
                {
                    "id": "b",
                    "prompt": "B?",
                    "input_kind": "free-text",
                    "condition": {"eq": ["a", "yes"]},
                },
                {
                    "id": "c",
                    "prompt": "C?",
                    "input_kind": "multi-select",
                    "options": [
                        {"label": "X", "value": "x"},
                        {"label": "Y", "value": "y"},
                        {"label": "None", "value": "none"},
                    ],
                },
            ],
            "reaction": {
                "name": "alpha_reaction",
                "rules": [
                    {"when": {"eq": ["a", "yes"]}, "lines": ["Yes then, {name}."]},
                    {"lines": ["Alpha done."]},
                ],
            },
        },
        {
            "id": "beta",
            "name": "Beta",
            "intro": "Beta intro.",
            "questions": [
                {"id": "d", "prompt": "Pace?", "input_kind": "pace", "allow_skip": True},
            ],
            "reaction": {"rules": [{"lines": ["Beta done."]}]},
        },
    ]
}

DEFAULT_SMALL_ANSWERS = {"a": "yes", "b": "Some text", "c": ["x"], "d": "5:30"}


@pytest.fixture
def timing():
    """Timing profile with every delay at zero."""
    return TimingConfig.instant()


@pytest.fixture(scope="session")
def questionnaire():
    """The shipped questionnaire."""
    return load_questionnaire()


@pytest.fixture(scope="session")
def narrative(questionnaire):
    """The shipped narrative, validated against the shipped questionnaire."""
    return load_narrative([q.id for q in questionnaire.all_questions()])


@pytest.fixture
def narrative_service(narrative):
    return NarrativeService(narrative)


@pytest.fixture
def small_questionnaire_data():
    return copy.deepcopy(SMALL_QUESTIONNAIRE)


@pytest.fixture
def small_questionnaire(small_questionnaire_data):
    questionnaire = Questionnaire(**small_questionnaire_data)
    validate_questionnaire(questionnaire)
    return questionnaire


@pytest.fixture
def answer():
    """Feed one answer to the current question of a SectionFlow, then settle.

    Pass `settle` to wait on an enclosing orchestrator instead of the flow.
    """

    async def _answer(flow, value, settle=None):
        question = flow.current_question
        assert question is not None, f"no question to answer in {flow.phase}"
        if question.allow_skip and value == SKIP_VALUE:
            flow.skip_question()
        elif question.input_kind == InputKind.SINGLE_SELECT:
            flow.select_option(value)
        elif question.input_kind == InputKind.MULTI_SELECT:
            for item in value:
                if item not in flow.selection:
                    flow.toggle_option(item)
            flow.confirm_selection()
        else:
            flow.submit_text(value)
        await (settle or flow.settle)()

    return _answer


@pytest.fixture
def small_answers():
    """One valid answer per question of the small questionnaire."""
    return copy.deepcopy(DEFAULT_SMALL_ANSWERS)

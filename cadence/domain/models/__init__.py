"""Domain models package."""

from .conditions import Condition
from .flow_phase import FlowPhase, QuestionPhase, SectionIntro, SectionReaction
from .narrative import (
    LineStyle,
    Narrative,
    NarrativeBlock,
    NarrativeLine,
    Rule,
    RuleTable,
    SceneScript,
)
from .questionnaire import (
    NONE_OPTION,
    SKIP_VALUE,
    InputKind,
    Question,
    QuestionOption,
    Questionnaire,
    Section,
)
from .responses import Answer, ResponseMap
from .scene import ConnectionResult, ResumeState, Scene

__all__ = [
    "Condition",
    "FlowPhase",
    "QuestionPhase",
    "SectionIntro",
    "SectionReaction",
    "LineStyle",
    "Narrative",
    "NarrativeBlock",
    "NarrativeLine",
    "Rule",
    "RuleTable",
    "SceneScript",
    "NONE_OPTION",
    "SKIP_VALUE",
    "InputKind",
    "Question",
    "QuestionOption",
    "Questionnaire",
    "Section",
    "Answer",
    "ResponseMap",
    "ConnectionResult",
    "ResumeState",
    "Scene",
]

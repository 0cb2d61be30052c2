"""Questionnaire structure: sections of questions with visibility conditions."""

from enum import Enum
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cadence.domain.models.conditions import Condition
from cadence.domain.models.narrative import NarrativeLine, RuleTable

# Multi-select sentinel that clears every other selection
NONE_OPTION = "none"
# Stored answer for a skipped pace question
SKIP_VALUE = "skip"


class InputKind(str, Enum):
    SINGLE_SELECT = "single-select"
    MULTI_SELECT = "multi-select"
    FREE_TEXT = "free-text"
    PACE = "pace"
    DISTANCE = "distance"
    DATE = "date"


SELECT_KINDS = (InputKind.SINGLE_SELECT, InputKind.MULTI_SELECT)


class QuestionOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    value: str


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(pattern=r"^[a-z][a-z0-9_]*$")
    prompt: str
    input_kind: InputKind
    options: List[QuestionOption] = Field(default_factory=list)
    placeholder: Optional[str] = None
    allow_skip: bool = False
    skip_label: str = "Not sure"
    condition: Optional[Condition] = None

    @model_validator(mode="after")
    def check_options(self) -> "Question":
        if self.input_kind in SELECT_KINDS and not self.options:
            raise ValueError(f"Question '{self.id}' needs options")
        if self.input_kind not in SELECT_KINDS and self.options:
            raise ValueError(f"Question '{self.id}' does not take options")
        values = [o.value for o in self.options]
        if len(values) != len(set(values)):
            raise ValueError(f"Question '{self.id}' has duplicate option values")
        if self.allow_skip and self.input_kind != InputKind.PACE:
            raise ValueError(f"Question '{self.id}': only pace questions can be skipped")
        return self

    @property
    def option_values(self) -> List[str]:
        return [o.value for o in self.options]

    def is_visible(self, responses: Mapping[str, Any]) -> bool:
        return self.condition is None or self.condition.evaluate(responses)


class Section(BaseModel):
    """A named group of questions with an intro line and a closing reaction."""

    id: str
    name: str
    intro: str
    questions: List[Question] = Field(min_length=1)
    reaction: RuleTable

    def get_reaction(self, facts: Mapping[str, Any]) -> List[NarrativeLine]:
        return self.reaction.select(facts)

    def question_ids(self) -> List[str]:
        return [q.id for q in self.questions]


class Questionnaire(BaseModel):
    sections: List[Section] = Field(min_length=1)

    def all_questions(self) -> List[Question]:
        return [q for section in self.sections for q in section.questions]

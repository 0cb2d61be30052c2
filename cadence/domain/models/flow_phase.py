"""Position of the section flow within the questionnaire.

question_index indexes the *visible* question list of the section, which is
recomputed from the responses every time it is read.
"""

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class SectionIntro(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["section-intro"] = "section-intro"
    section_index: int = Field(ge=0)


class QuestionPhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["question"] = "question"
    section_index: int = Field(ge=0)
    question_index: int = Field(ge=0)


class SectionReaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["section-reaction"] = "section-reaction"
    section_index: int = Field(ge=0)


FlowPhase = Union[SectionIntro, QuestionPhase, SectionReaction]

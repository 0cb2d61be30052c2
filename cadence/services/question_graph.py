"""Question graph resolution.

Visibility is never cached: every call filters the section's static
question list against the responses as they are right now. After an answer
changes the visible set, the next question is found by locating the answered
question's id in the recomputed list, never by reusing the old index.
"""

from typing import Any, List, Mapping, Optional

from cadence.domain.models.flow_phase import (
    FlowPhase,
    QuestionPhase,
    SectionIntro,
    SectionReaction,
)
from cadence.domain.models.questionnaire import Question, Questionnaire, Section


def visible_questions(section: Section, responses: Mapping[str, Any]) -> List[Question]:
    """Questions of the section whose condition holds, in static order."""
    return [q for q in section.questions if q.is_visible(responses)]


def next_question_index(
    section: Section, responses: Mapping[str, Any], answered_id: str
) -> Optional[int]:
    """Visible index of the question after `answered_id`, or None at section end.

    If the answered question itself became hidden, the search falls back to
    the first visible question that follows it in static order.
    """
    visible = visible_questions(section, responses)
    ids = [q.id for q in visible]

    if answered_id in ids:
        j = ids.index(answered_id) + 1
        return j if j < len(visible) else None

    static_ids = section.question_ids()
    position = static_ids.index(answered_id) if answered_id in static_ids else -1
    for j, question in enumerate(visible):
        if static_ids.index(question.id) > position:
            return j
    return None


def phase_after_answer(
    questionnaire: Questionnaire,
    section_index: int,
    responses: Mapping[str, Any],
    answered_id: str,
) -> FlowPhase:
    section = questionnaire.sections[section_index]
    j = next_question_index(section, responses, answered_id)
    if j is None:
        return SectionReaction(section_index=section_index)
    return QuestionPhase(section_index=section_index, question_index=j)


def previous_phase(
    questionnaire: Questionnaire, responses: Mapping[str, Any], phase: FlowPhase
) -> Optional[FlowPhase]:
    """Where back navigation leads from `phase`; None on the first intro."""
    i = phase.section_index

    if isinstance(phase, QuestionPhase):
        if phase.question_index > 0:
            return QuestionPhase(section_index=i, question_index=phase.question_index - 1)
        return SectionIntro(section_index=i)

    if isinstance(phase, SectionIntro):
        if i > 0:
            return SectionReaction(section_index=i - 1)
        return None

    visible = visible_questions(questionnaire.sections[i], responses)
    if not visible:
        return SectionIntro(section_index=i)
    return QuestionPhase(section_index=i, question_index=len(visible) - 1)


def resume_phase(
    questionnaire: Questionnaire, responses: Mapping[str, Any]
) -> Optional[QuestionPhase]:
    """First visible question without an answer, or None when all are answered."""
    for i, section in enumerate(questionnaire.sections):
        for k, question in enumerate(visible_questions(section, responses)):
            if question.id not in responses:
                return QuestionPhase(section_index=i, question_index=k)
    return None


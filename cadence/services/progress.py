"""Questionnaire progress as a fraction in [0, 1].

Sections not yet reached are counted with the visibility they have under
the current responses, so a branch that has not been answered yet counts as
its absent branch. The total can therefore shift as answers come in.
"""

from typing import Any, Mapping

from cadence.domain.models.flow_phase import FlowPhase, QuestionPhase, SectionReaction
from cadence.domain.models.questionnaire import Questionnaire
from cadence.services.question_graph import visible_questions


def calculate_progress(
    questionnaire: Questionnaire, responses: Mapping[str, Any], phase: FlowPhase
) -> float:
    answered = 0
    total = 0

    for i, section in enumerate(questionnaire.sections):
        count = len(visible_questions(section, responses))
        total += count

        if i < phase.section_index:
            answered += count
        elif i == phase.section_index:
            if isinstance(phase, SectionReaction):
                answered += count
            elif isinstance(phase, QuestionPhase):
                answered += min(phase.question_index, count)

    if total == 0:
        return 0.0
    return min(max(answered / total, 0.0), 1.0)

"""Answer validation per input kind.

Malformed input is rejected here, before it reaches the response map, so
the flow can assume every stored answer is well-formed.
"""

import re
from typing import List, Sequence

from cadence.core.exceptions import InputValidationError
from cadence.domain.models.questionnaire import (
    NONE_OPTION,
    SKIP_VALUE,
    InputKind,
    Question,
)

PACE_PATTERN = re.compile(r"^(\d{1,2}):(\d{1,2})$")
DISTANCE_PATTERN = re.compile(r"^\d+(\.\d+)?\s*[a-zA-Z]*$")

TEXT_KINDS = (InputKind.FREE_TEXT, InputKind.PACE, InputKind.DISTANCE, InputKind.DATE)


def normalize_pace(raw: str) -> str:
    """Validate M:SS (or MM:SS) and zero-pad the seconds."""
    match = PACE_PATTERN.match(raw.strip())
    if not match:
        raise InputValidationError(f"Pace must look like 5:30, got {raw!r}")
    minutes, seconds = int(match.group(1)), int(match.group(2))
    if seconds >= 60:
        raise InputValidationError(f"Pace seconds must be under 60, got {seconds}")
    if minutes == 0 and seconds == 0:
        raise InputValidationError("Pace cannot be 0:00")
    return f"{minutes}:{seconds:02d}"


def normalize_distance(raw: str) -> str:
    value = raw.strip()
    if not DISTANCE_PATTERN.match(value):
        raise InputValidationError(f"Distance must start with a number, got {raw!r}")
    return value


def normalize_text(question: Question, raw: str) -> str:
    """Validate a submitted free-text, pace, distance or date answer."""
    if question.input_kind not in TEXT_KINDS:
        raise InputValidationError(
            f"Question '{question.id}' is {question.input_kind.value}, not a text input"
        )
    value = raw.strip()
    if not value:
        raise InputValidationError(f"Answer for '{question.id}' cannot be empty")

    if question.input_kind == InputKind.PACE:
        return normalize_pace(value)
    if question.input_kind == InputKind.DISTANCE:
        return normalize_distance(value)
    return value


def validate_option(question: Question, value: str) -> str:
    if question.input_kind != InputKind.SINGLE_SELECT:
        raise InputValidationError(
            f"Question '{question.id}' is {question.input_kind.value}, not single-select"
        )
    if value not in question.option_values:
        raise InputValidationError(f"'{value}' is not an option of '{question.id}'")
    return value


def toggle_selection(question: Question, selection: Sequence[str], value: str) -> List[str]:
    """Toggle one multi-select option; the none option clears the rest."""
    if question.input_kind != InputKind.MULTI_SELECT:
        raise InputValidationError(
            f"Question '{question.id}' is {question.input_kind.value}, not multi-select"
        )
    if value not in question.option_values:
        raise InputValidationError(f"'{value}' is not an option of '{question.id}'")

    if value == NONE_OPTION:
        return [NONE_OPTION]
    without_none = [v for v in selection if v != NONE_OPTION]
    if value in without_none:
        return [v for v in without_none if v != value]
    return without_none + [value]


def validate_selection(question: Question, selection: Sequence[str]) -> List[str]:
    if not selection:
        raise InputValidationError(f"Choose at least one option for '{question.id}'")
    unknown = [v for v in selection if v not in question.option_values]
    if unknown:
        raise InputValidationError(f"Unknown options for '{question.id}': {unknown}")
    if NONE_OPTION in selection and len(selection) > 1:
        raise InputValidationError(f"'{NONE_OPTION}' cannot be combined with other options")
    return list(selection)


def skip_answer(question: Question) -> str:
    if not question.allow_skip:
        raise InputValidationError(f"Question '{question.id}' cannot be skipped")
    return SKIP_VALUE

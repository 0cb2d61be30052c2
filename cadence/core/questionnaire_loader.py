"""Questionnaire loader for section/question YAML.

Besides shape validation this enforces the rules that keep visibility
resolvable in a single pass: question ids are unique, a condition only reads
questions that come earlier in its own section, and every section has at
least one question that is always shown.
"""

from pathlib import Path
from typing import Dict, List, Optional

import structlog
import yaml
from pydantic import ValidationError

from cadence.core.config import settings
from cadence.core.exceptions import ConditionError, ConfigurationError, EmptySectionError
from cadence.core.narrative_loader import DERIVED_FACTS, check_rule_table, raise_collected
from cadence.domain.models.questionnaire import Questionnaire

log = structlog.get_logger(__name__)

_cache: Dict[Path, Questionnaire] = {}


def validate_questionnaire(questionnaire: Questionnaire) -> None:
    """Check id uniqueness, condition ordering, fallbacks and reaction tables.

    Raises:
        ConditionError: Duplicate id, or a condition reading a later,
            unknown or cross-section question
        EmptySectionError: Section without an unconditional question
        RuleTableError: Reaction table without fallback or with unknown fields
    """
    condition_errors: List[str] = []
    section_errors: List[str] = []
    rule_errors: List[str] = []

    known = {q.id for q in questionnaire.all_questions()} | set(DERIVED_FACTS)
    seen: set = set()
    for question in questionnaire.all_questions():
        if question.id in seen:
            condition_errors.append(f"duplicate question id '{question.id}'")
        seen.add(question.id)

    for section in questionnaire.sections:
        earlier: set = set()
        for question in section.questions:
            if question.condition is not None:
                bad = question.condition.references() - earlier
                if bad:
                    condition_errors.append(
                        f"{section.id}.{question.id}: condition may only reference "
                        f"earlier questions of the section, got {sorted(bad)}"
                    )
            earlier.add(question.id)

        if all(q.condition is not None for q in section.questions):
            section_errors.append(f"section '{section.id}' has no unconditional question")

        check_rule_table(
            section.reaction,
            known,
            f"{section.id}.reaction",
            condition_errors,
            rule_errors,
        )
        if not section.reaction.always_produces_lines:
            rule_errors.append(f"{section.id}.reaction: some responses would render no lines")

    if section_errors:
        raise EmptySectionError("; ".join(section_errors))
    if condition_errors:
        raise ConditionError("; ".join(condition_errors))
    raise_collected([], rule_errors)


def load_questionnaire(path: Optional[Path] = None) -> Questionnaire:
    """Load and validate the questionnaire from YAML. Cached after first load.

    Args:
        path: Override the questionnaire file (mainly for testing)

    Returns:
        Validated Questionnaire

    Raises:
        FileNotFoundError: Questionnaire file missing
        ConfigurationError: Invalid YAML structure or question graph
    """
    if path is None:
        path = settings.config_dir / settings.questionnaire_file
    path = Path(path).resolve()

    if path in _cache:
        return _cache[path]

    if not path.exists():
        raise FileNotFoundError(f"Questionnaire not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ConfigurationError(f"Questionnaire file {path} must contain a mapping")

    try:
        questionnaire = Questionnaire(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid questionnaire {path}: {e}") from e

    validate_questionnaire(questionnaire)

    _cache[path] = questionnaire
    log.info(
        "questionnaire_loaded",
        path=str(path),
        sections=len(questionnaire.sections),
        questions=len(questionnaire.all_questions()),
    )
    return questionnaire


def clear_cache() -> None:
    """Clear the questionnaire cache."""
    _cache.clear()

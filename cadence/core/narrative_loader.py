"""Narrative loader for scene script YAML.

Scene scripts are rule tables over the runner's responses. Structural
problems are reported together so a broken content file can be fixed in one
pass. Narratives are cached after first load.
"""

import string
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

import structlog
import yaml
from pydantic import ValidationError

from cadence.core.config import settings
from cadence.core.exceptions import ConditionError, ConfigurationError, RuleTableError
from cadence.domain.models.narrative import Narrative, RuleTable
from cadence.domain.models.scene import Scene

log = structlog.get_logger(__name__)

# Facts available to every template besides question ids
DERIVED_FACTS = ("name", "has_wearable", "provider")

_cache: Dict[Path, Narrative] = {}


def template_fields(text: str) -> Set[str]:
    """Placeholder names used by a `{field}` template."""
    return {
        field_name
        for _, field_name, _, _ in string.Formatter().parse(text)
        if field_name
    }


def check_rule_table(
    table: RuleTable,
    known_fields: Iterable[str],
    where: str,
    condition_errors: List[str],
    rule_errors: List[str],
) -> None:
    """Append every problem found in a rule table to the error lists."""
    known = set(known_fields)

    if not table.has_fallback:
        rule_errors.append(f"{where}: last rule must be an unconditional fallback")
    for i, rule in enumerate(table.rules[:-1]):
        if rule.when is None:
            rule_errors.append(f"{where}: unconditional rule {i} shadows later rules")

    for condition in table.conditions():
        unknown = condition.references() - known
        if unknown:
            condition_errors.append(
                f"{where}: condition references unknown fields {sorted(unknown)}"
            )

    for text in table.templates():
        try:
            fields = template_fields(text)
        except ValueError as e:
            rule_errors.append(f"{where}: malformed template {text!r} ({e})")
            continue
        unknown = fields - known
        if unknown:
            rule_errors.append(
                f"{where}: template uses unknown fields {sorted(unknown)}"
            )


def raise_collected(condition_errors: List[str], rule_errors: List[str]) -> None:
    if condition_errors:
        raise ConditionError("; ".join(condition_errors))
    if rule_errors:
        raise RuleTableError("; ".join(rule_errors))


def validate_narrative(narrative: Narrative, question_ids: Iterable[str]) -> None:
    """Check scene coverage, fallbacks, field references and non-empty blocks.

    Raises:
        ConditionError: A condition references an unknown field
        RuleTableError: Missing script or fallback, or a block that can be empty
    """
    known = set(question_ids) | set(DERIVED_FACTS)
    condition_errors: List[str] = []
    rule_errors: List[str] = []

    for scene in Scene:
        if scene is Scene.QUESTIONS:
            continue
        if scene not in narrative.scenes:
            rule_errors.append(f"missing script for scene '{scene.value}'")

    for scene, script in narrative.scenes.items():
        for block in script.blocks:
            where = f"{scene.value}.{block.name}"
            for table in block.tables:
                check_rule_table(
                    table, known, f"{where}.{table.name}", condition_errors, rule_errors
                )
            if not block.always_produces_lines:
                rule_errors.append(f"{where}: some responses would render no lines")

    raise_collected(condition_errors, rule_errors)


def load_narrative(
    question_ids: Iterable[str], path: Optional[Path] = None
) -> Narrative:
    """Load and validate scene scripts from YAML. Cached after first load.

    Args:
        question_ids: Every question id of the questionnaire, used to check
            condition and template references
        path: Override the narrative file (mainly for testing)

    Returns:
        Validated Narrative

    Raises:
        FileNotFoundError: Narrative file missing
        ConfigurationError: Invalid YAML structure or rule tables
    """
    if path is None:
        path = settings.config_dir / settings.narrative_file
    path = Path(path).resolve()

    if path in _cache:
        return _cache[path]

    if not path.exists():
        raise FileNotFoundError(f"Narrative not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ConfigurationError(f"Narrative file {path} must contain a mapping")

    try:
        narrative = Narrative(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid narrative {path}: {e}") from e

    validate_narrative(narrative, question_ids)

    _cache[path] = narrative
    log.info("narrative_loaded", path=str(path), scenes=len(narrative.scenes))
    return narrative


def clear_cache() -> None:
    """Clear the narrative cache."""
    _cache.clear()

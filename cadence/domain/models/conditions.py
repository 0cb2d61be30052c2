"""Visibility and rule predicates expressed as a small YAML DSL.

A condition is a single-key mapping:

    {"eq": ["runner_type", "beginner"]}
    {"in": ["goal_type", ["race", "faster"]]}
    {"contains": ["past_injuries", "shin_splints"]}
    {"exists": "race_distance"}
    {"is_true": "has_wearable"}
    {"all": [...]}, {"any": [...]}, {"not": {...}}

Facts are any mapping with .get() and membership (ResponseMap or dict).
A missing field never satisfies a comparison.
"""

from typing import Any, Dict, List, Mapping, Set

from pydantic import RootModel, model_validator

LOGICAL_OPERATORS = {"all", "any", "not"}
PAIR_OPERATORS = {"eq", "ne", "in", "contains"}
FIELD_OPERATORS = {"exists", "is_true"}
OPERATORS = LOGICAL_OPERATORS | PAIR_OPERATORS | FIELD_OPERATORS


def _check_dsl(dsl: Any, path: str, errors: List[str]) -> None:
    if not isinstance(dsl, dict) or len(dsl) != 1:
        errors.append(f"{path}: expected a single-operator mapping, got {dsl!r}")
        return

    op, arg = next(iter(dsl.items()))
    if op not in OPERATORS:
        errors.append(f"{path}: unknown operator '{op}'")
    elif op in ("all", "any"):
        if not isinstance(arg, list) or not arg:
            errors.append(f"{path}.{op}: expected a non-empty list")
            return
        for i, sub in enumerate(arg):
            _check_dsl(sub, f"{path}.{op}[{i}]", errors)
    elif op == "not":
        _check_dsl(arg, f"{path}.not", errors)
    elif op in PAIR_OPERATORS:
        if not isinstance(arg, list) or len(arg) != 2 or not isinstance(arg[0], str):
            errors.append(f"{path}.{op}: expected [field, value]")
        elif op == "in" and not isinstance(arg[1], list):
            errors.append(f"{path}.in: expected [field, [values...]]")
    elif not isinstance(arg, str):
        errors.append(f"{path}.{op}: expected a field name")


def _evaluate(dsl: Dict[str, Any], facts: Mapping[str, Any]) -> bool:
    op, arg = next(iter(dsl.items()))

    if op == "all":
        return all(_evaluate(sub, facts) for sub in arg)
    if op == "any":
        return any(_evaluate(sub, facts) for sub in arg)
    if op == "not":
        return not _evaluate(arg, facts)

    if op in FIELD_OPERATORS:
        if arg not in facts:
            return False
        value = facts.get(arg)
        if op == "exists":
            return value is not None
        return value is True

    field, expected = arg
    if field not in facts:
        return False
    actual = facts.get(field)

    if op == "eq":
        return actual == expected
    if op == "ne":
        return actual != expected
    if op == "in":
        if isinstance(actual, (tuple, list)):
            return any(item in expected for item in actual)
        return actual in expected
    # contains: membership for selections, equality for single answers
    if isinstance(actual, (tuple, list)):
        return expected in actual
    return actual == expected


def _collect_fields(dsl: Dict[str, Any], out: Set[str]) -> None:
    op, arg = next(iter(dsl.items()))
    if op in ("all", "any"):
        for sub in arg:
            _collect_fields(sub, out)
    elif op == "not":
        _collect_fields(arg, out)
    elif op in PAIR_OPERATORS:
        out.add(arg[0])
    else:
        out.add(arg)


class Condition(RootModel[Dict[str, Any]]):
    """Pure predicate over a fact mapping.

    Structure is validated on construction; `ne` is only satisfied by an
    answered field, same as every other comparison.
    """

    @model_validator(mode="after")
    def check_structure(self) -> "Condition":
        errors: List[str] = []
        _check_dsl(self.root, "condition", errors)
        if errors:
            raise ValueError("; ".join(errors))
        return self

    def evaluate(self, facts: Mapping[str, Any]) -> bool:
        return _evaluate(self.root, facts)

    def references(self) -> Set[str]:
        """Every field name the condition reads."""
        fields: Set[str] = set()
        _collect_fields(self.root, fields)
        return fields

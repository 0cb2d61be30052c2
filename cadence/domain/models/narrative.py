"""Narrative rule tables.

Coach copy is data: every generator is an ordered list of rules, each
pairing an optional condition with the lines it contributes. The first rule
whose condition holds wins; the last rule of every table is an
unconditional fallback. A block concatenates the output of its tables, so a
table whose fallback has no lines acts as an optional append.
"""

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, model_validator

from cadence.core.exceptions import RuleTableError
from cadence.domain.models.conditions import Condition
from cadence.domain.models.scene import Scene


class LineStyle(str, Enum):
    """How a block is revealed: coach speech, thinking trace or welcome copy."""

    COACH = "coach"
    THINKING = "thinking"
    WELCOME = "welcome"


class NarrativeLine(BaseModel):
    """One template line; `{field}` placeholders are filled from facts."""

    text: str = Field(min_length=1)
    pause_after_ms: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def accept_plain_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"text": data}
        return data


class Rule(BaseModel):
    when: Optional[Condition] = None
    lines: List[NarrativeLine] = Field(default_factory=list)

    def matches(self, facts: Mapping[str, Any]) -> bool:
        return self.when is None or self.when.evaluate(facts)


class RuleTable(BaseModel):
    """Ordered predicate/template pairs with a mandatory catch-all."""

    name: str = "rules"
    rules: List[Rule] = Field(min_length=1)

    @property
    def has_fallback(self) -> bool:
        return self.rules[-1].when is None

    @property
    def always_produces_lines(self) -> bool:
        """True when no branch can yield zero lines."""
        return self.has_fallback and all(rule.lines for rule in self.rules)

    def select(self, facts: Mapping[str, Any]) -> List[NarrativeLine]:
        for rule in self.rules:
            if rule.matches(facts):
                return list(rule.lines)
        raise RuleTableError(f"Rule table '{self.name}' has no matching rule")

    def conditions(self) -> List[Condition]:
        return [rule.when for rule in self.rules if rule.when is not None]

    def templates(self) -> List[str]:
        return [line.text for rule in self.rules for line in rule.lines]


class NarrativeBlock(BaseModel):
    """A run of lines revealed together in one style."""

    name: str
    style: LineStyle = LineStyle.COACH
    tables: List[RuleTable] = Field(min_length=1)

    @property
    def always_produces_lines(self) -> bool:
        return any(table.always_produces_lines for table in self.tables)

    def select(self, facts: Mapping[str, Any]) -> List[NarrativeLine]:
        lines: List[NarrativeLine] = []
        for table in self.tables:
            lines.extend(table.select(facts))
        return lines


class SceneScript(BaseModel):
    blocks: List[NarrativeBlock] = Field(min_length=1)


class Narrative(BaseModel):
    """Scene scripts keyed by scene; the questions scene has none."""

    scenes: Dict[Scene, SceneScript]
    welcome_back: str = "Welcome back! Picking up where you left off."

    def script_for(self, scene: Scene) -> SceneScript:
        try:
            return self.scenes[scene]
        except KeyError:
            raise RuleTableError(f"No script for scene '{scene.value}'") from None

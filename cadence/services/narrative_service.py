"""Narrative rendering.

Turns rule tables into concrete coach lines for a set of facts. Rendering is
a pure function of the facts: the same responses, name and provider always
give the same lines, whether the scene is reached live or on resume.
"""

from typing import Any, Dict, List, Mapping, Optional, Union

import structlog
from pydantic import BaseModel

from cadence.domain.models.narrative import LineStyle, Narrative, NarrativeLine
from cadence.domain.models.questionnaire import Section
from cadence.domain.models.responses import ResponseMap
from cadence.domain.models.scene import Scene

log = structlog.get_logger(__name__)

MISSING_VALUE = "unspecified"


class _TemplateValues(dict):
    def __missing__(self, key: str) -> str:
        return MISSING_VALUE


class RenderedBlock(BaseModel):
    name: str
    style: LineStyle
    lines: List[NarrativeLine]


def build_facts(
    responses: Union[ResponseMap, Mapping[str, Any]],
    display_name: str,
    connected_provider: Optional[str] = None,
) -> Dict[str, Any]:
    """Responses plus the derived facts name, has_wearable and provider."""
    if isinstance(responses, ResponseMap):
        facts: Dict[str, Any] = responses.as_dict()
    else:
        facts = dict(responses)
    facts["name"] = display_name
    facts["has_wearable"] = connected_provider is not None
    if connected_provider is not None:
        facts["provider"] = connected_provider
    return facts


def _display(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value)


def render_template(text: str, facts: Mapping[str, Any]) -> str:
    values = _TemplateValues({key: _display(value) for key, value in facts.items()})
    return text.format_map(values)


def render_lines(lines: List[NarrativeLine], facts: Mapping[str, Any]) -> List[NarrativeLine]:
    return [
        NarrativeLine(text=render_template(line.text, facts), pause_after_ms=line.pause_after_ms)
        for line in lines
    ]


class NarrativeService:
    """Renders scene scripts and section reactions."""

    def __init__(self, narrative: Narrative):
        self.narrative = narrative

    def render_scene(self, scene: Scene, facts: Mapping[str, Any]) -> List[RenderedBlock]:
        script = self.narrative.script_for(scene)
        blocks = [
            RenderedBlock(
                name=block.name,
                style=block.style,
                lines=render_lines(block.select(facts), facts),
            )
            for block in script.blocks
        ]
        log.debug(
            "scene_rendered",
            scene=scene.value,
            blocks=len(blocks),
            lines=sum(len(b.lines) for b in blocks),
        )
        return blocks

    def render_reaction(self, section: Section, facts: Mapping[str, Any]) -> List[NarrativeLine]:
        return render_lines(section.get_reaction(facts), facts)

    @property
    def welcome_back_message(self) -> str:
        return self.narrative.welcome_back

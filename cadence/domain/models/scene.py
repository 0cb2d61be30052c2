"""Top-level onboarding scenes, resume state and wearable connection results."""

from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field


class Scene(str, Enum):
    """Onboarding scenes in the order they are visited."""

    WELCOME_INTRO = "welcome-intro"
    WELCOME_GOT_IT = "welcome-got-it"
    WELCOME_TRANSITION = "welcome-transition"
    QUESTIONS = "questions"
    WEARABLE = "wearable"
    THINKING_STREAM = "thinking-stream"
    COACHING_RESPONSE = "coaching-response"
    HONEST_LIMITS = "honest-limits"
    SYNTHESIS = "synthesis"
    HANDOFF = "handoff"


# Scenes after the questionnaire, whose content is generated from responses
ANALYSIS_SCENES = (
    Scene.THINKING_STREAM,
    Scene.COACHING_RESPONSE,
    Scene.HONEST_LIMITS,
    Scene.SYNTHESIS,
)

# Welcome scenes hide the progress indicator
WELCOME_SCENES = (
    Scene.WELCOME_INTRO,
    Scene.WELCOME_GOT_IT,
    Scene.WELCOME_TRANSITION,
)

# Legal forward edges. welcome-got-it is only reachable through a name change.
TRANSITIONS: Dict[Scene, tuple] = {
    Scene.WELCOME_INTRO: (Scene.WELCOME_GOT_IT, Scene.WELCOME_TRANSITION),
    Scene.WELCOME_GOT_IT: (Scene.WELCOME_TRANSITION,),
    Scene.WELCOME_TRANSITION: (Scene.QUESTIONS,),
    Scene.QUESTIONS: (Scene.WEARABLE,),
    Scene.WEARABLE: (Scene.THINKING_STREAM,),
    Scene.THINKING_STREAM: (Scene.COACHING_RESPONSE,),
    Scene.COACHING_RESPONSE: (Scene.HONEST_LIMITS,),
    Scene.HONEST_LIMITS: (Scene.SYNTHESIS,),
    Scene.SYNTHESIS: (Scene.HANDOFF,),
    Scene.HANDOFF: (),
}


class ResumeState(BaseModel):
    """Persisted onboarding position handed back by the host app."""

    scene: Scene
    responses: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)
    display_name: Optional[str] = None
    connected_provider: Optional[str] = None


class ConnectionResult(BaseModel):
    """Outcome of a successful wearable connection."""

    provider_id: str
    athlete_first_name: Optional[str] = None
    athlete_last_name: Optional[str] = None

    @property
    def athlete_name(self) -> Optional[str]:
        parts = [p for p in (self.athlete_first_name, self.athlete_last_name) if p]
        return " ".join(parts) or None

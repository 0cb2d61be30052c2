"""Scene orchestrator for the onboarding conversation.

Scenes run strictly forward:

    welcome-intro -> [welcome-got-it] -> welcome-transition -> questions
      -> wearable -> thinking-stream -> coaching-response -> honest-limits
      -> synthesis -> handoff

welcome-got-it is only visited when the runner corrects their name. Scripted
scenes stream their blocks one after another; analysis scenes move on by
themselves once the last block is revealed, the others wait for the runner.

Host capabilities (name saving, wearable connection, response submission)
are awaited as opaque effects. While one is pending nothing advances; a
failure is kept in `last_error` and the scene stays where it is until the
runner retries or skips.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

import structlog

from cadence.core.config import TimingConfig
from cadence.core.exceptions import (
    DeviceConnectionError,
    ExternalEffectError,
    InputValidationError,
    InvalidTransitionError,
    NameSubmissionError,
    ResponseSubmissionError,
    ResumeError,
)
from cadence.domain.models.narrative import LineStyle
from cadence.domain.models.questionnaire import Questionnaire
from cadence.domain.models.responses import ResponseMap
from cadence.domain.models.scene import (
    ANALYSIS_SCENES,
    TRANSITIONS,
    WELCOME_SCENES,
    ConnectionResult,
    ResumeState,
    Scene,
)
from cadence.services.line_sequencer import LineSequencer
from cadence.services.narrative_service import NarrativeService, RenderedBlock, build_facts
from cadence.services.protocols import IDeviceConnector, INameConfirmer, IResponseSubmitter
from cadence.services.scheduling import Scheduler, drain
from cadence.services.section_flow import SectionFlow

log = structlog.get_logger(__name__)


class Awaiting(str, Enum):
    """Input the orchestrator is waiting for."""

    NAME = "name"
    CONTINUE = "continue"
    ANSWER = "answer"
    RETRY_SUBMIT = "retry_submit"
    CONNECT = "connect"
    FINISH = "finish"


# Scenes whose lines wait for a runner action once revealed
USER_GATED = {
    Scene.WELCOME_INTRO: Awaiting.NAME,
    Scene.WELCOME_TRANSITION: Awaiting.CONTINUE,
    Scene.WEARABLE: Awaiting.CONNECT,
    Scene.HANDOFF: Awaiting.FINISH,
}


class OnboardingOrchestrator:
    """Top-level onboarding state machine."""

    def __init__(
        self,
        questionnaire: Questionnaire,
        narrative: NarrativeService,
        timing: Optional[TimingConfig] = None,
        user_name: Optional[str] = None,
        fallback_display_name: str = "there",
        device_connector: Optional[IDeviceConnector] = None,
        name_confirmer: Optional[INameConfirmer] = None,
        response_submitter: Optional[IResponseSubmitter] = None,
        on_section_flow_complete: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_interview_complete: Optional[Callable[[], None]] = None,
        on_lines_revealed: Optional[Callable[[List[str]], None]] = None,
    ):
        self.questionnaire = questionnaire
        self.narrative = narrative
        self.timing = timing or TimingConfig()
        self.fallback_display_name = fallback_display_name
        self.device_connector = device_connector
        self.name_confirmer = name_confirmer
        self.response_submitter = response_submitter
        self.on_section_flow_complete = on_section_flow_complete
        self.on_interview_complete = on_interview_complete
        self.on_lines_revealed = on_lines_revealed

        self._display_name = (user_name or "").strip() or fallback_display_name
        self._responses = ResponseMap()
        self._scene = Scene.WELCOME_INTRO
        self._scene_phase = 0
        self._blocks: List[RenderedBlock] = []
        self._shown: List[str] = []
        self._lines_revealed = False
        self._sequencer: Optional[LineSequencer] = None
        self._flow: Optional[SectionFlow] = None
        self._scheduler = Scheduler("scene_orchestrator")
        self._toast_scheduler = Scheduler("welcome_back")
        self._effect_tasks: List[asyncio.Task] = []

        self._pending_effect: Optional[str] = None
        self._last_error: Optional[ExternalEffectError] = None
        self._connecting_provider: Optional[str] = None
        self._connection: Optional[ConnectionResult] = None
        self._submitted = False
        self._welcome_back = False
        self._started = False
        self._complete = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def scene(self) -> Scene:
        return self._scene

    @property
    def scene_phase(self) -> int:
        """Index of the block being revealed; equals the block count once done."""
        return self._scene_phase

    @property
    def display_name(self) -> str:
        return self._display_name

    @property
    def responses(self) -> ResponseMap:
        return self._responses

    @property
    def flow(self) -> Optional[SectionFlow]:
        return self._flow

    @property
    def visible_lines(self) -> List[str]:
        if self._scene is Scene.QUESTIONS and self._flow is not None:
            return self._flow.visible_lines
        current: List[str] = []
        if self._sequencer is not None and not self._sequencer.is_complete:
            current = self._sequencer.visible_lines
        return self._shown + current

    @property
    def is_pending(self) -> bool:
        return self._pending_effect is not None

    @property
    def pending_effect(self) -> Optional[str]:
        return self._pending_effect

    @property
    def last_error(self) -> Optional[ExternalEffectError]:
        return self._last_error

    @property
    def connected_provider(self) -> Optional[str]:
        return self._connection.provider_id if self._connection else None

    @property
    def connected_athlete_name(self) -> Optional[str]:
        return self._connection.athlete_name if self._connection else None

    @property
    def connecting_provider(self) -> Optional[str]:
        return self._connecting_provider

    @property
    def connection_status(self) -> str:
        if self._connection is not None:
            return "connected"
        if self._connecting_provider is not None:
            return "connecting"
        return "not_connected"

    @property
    def welcome_back(self) -> bool:
        return self._welcome_back

    @property
    def welcome_back_message(self) -> str:
        return self.narrative.welcome_back_message

    @property
    def show_progress(self) -> bool:
        return self._scene not in WELCOME_SCENES

    @property
    def progress(self) -> float:
        if self._scene in WELCOME_SCENES:
            return 0.0
        if self._scene is Scene.QUESTIONS:
            return self._flow.progress if self._flow is not None else 0.0
        return 1.0

    @property
    def is_complete(self) -> bool:
        return self._complete

    @property
    def awaiting(self) -> Optional[Awaiting]:
        """What the runner is expected to do next, None while the coach is talking."""
        if self._complete or self._pending_effect is not None:
            return None
        if self._scene is Scene.QUESTIONS:
            if self._flow is None:
                return None
            if self._flow.is_complete:
                return Awaiting.RETRY_SUBMIT if self._last_error is not None else None
            if self._flow.current_question is not None and not self._flow.is_advancing:
                return Awaiting.ANSWER
            return None
        if not self._lines_revealed:
            return None
        if self._scene is Scene.WEARABLE and self._connection is not None:
            return None
        return USER_GATED.get(self._scene)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, resume: Optional[ResumeState] = None) -> None:
        """Begin at welcome-intro, or jump straight to a persisted scene."""
        if self._started:
            raise InvalidTransitionError("Onboarding already started")

        if resume is None or resume.scene is Scene.WELCOME_INTRO:
            self._started = True
            if resume is not None and resume.display_name:
                self._display_name = resume.display_name
            log.info("onboarding_started", display_name=self._display_name)
            self._enter(Scene.WELCOME_INTRO)
            return

        if resume.scene is Scene.WELCOME_GOT_IT:
            raise ResumeError("Cannot resume into welcome-got-it; resume at welcome-transition")

        self._started = True
        self._responses = ResponseMap(resume.responses)
        if resume.display_name:
            self._display_name = resume.display_name
        if resume.connected_provider:
            self._connection = ConnectionResult(provider_id=resume.connected_provider)
        if resume.scene not in WELCOME_SCENES and resume.scene is not Scene.QUESTIONS:
            self._responses.freeze()
            self._submitted = True

        self._welcome_back = True
        self._toast_scheduler.call_later(
            self.timing.welcome_back_ms, self._hide_welcome_back, label="welcome_back"
        )
        log.info(
            "onboarding_resumed",
            scene=resume.scene.value,
            answered=len(self._responses),
            connected_provider=self.connected_provider,
        )
        self._enter(resume.scene, resumed=True)

    async def settle(self) -> None:
        """Wait until the runner has to act, or onboarding is complete."""
        await drain(self.pending_tasks)

    def pending_tasks(self) -> List[asyncio.Task]:
        tasks = self._scheduler.pending()
        tasks.extend(t for t in self._effect_tasks if not t.done())
        if self._sequencer is not None:
            tasks.extend(self._sequencer.pending_tasks())
        if self._flow is not None:
            tasks.extend(self._flow.pending_tasks())
        return tasks

    def close(self) -> None:
        self._cancel_scene_work()
        self._toast_scheduler.cancel_all()
        for task in self._effect_tasks:
            task.cancel()
        self._effect_tasks = []
        if self._flow is not None:
            self._flow.close()

    def skip_lines(self) -> None:
        """Reveal the block currently streaming at once."""
        if self._scene is Scene.QUESTIONS:
            if self._flow is not None:
                self._flow.skip_lines()
            return
        if self._sequencer is not None and not self._sequencer.is_complete:
            self._sequencer.skip()

    # ------------------------------------------------------------------
    # Welcome
    # ------------------------------------------------------------------

    async def confirm_name(self) -> bool:
        """Keep the current name and move on to the welcome transition."""
        self._require_scene(Scene.WELCOME_INTRO)
        ok = await self._submit_name(self._display_name)
        if ok:
            self._go(Scene.WELCOME_TRANSITION)
        return ok

    async def change_name(self, name: str) -> bool:
        """Correct the display name; acknowledged in welcome-got-it."""
        self._require_scene(Scene.WELCOME_INTRO)
        name = name.strip()
        if not name:
            raise InputValidationError("Name cannot be empty")
        ok = await self._submit_name(name)
        if ok:
            self._display_name = name
            log.info("display_name_changed", display_name=name)
            self._go(Scene.WELCOME_GOT_IT)
        return ok

    def continue_welcome(self) -> None:
        self._require_scene(Scene.WELCOME_TRANSITION)
        self._go(Scene.QUESTIONS)

    async def _submit_name(self, name: str) -> bool:
        if self.name_confirmer is None:
            return True
        ok, _ = await self._run_effect(
            "submit_name", NameSubmissionError, lambda: self.name_confirmer.submit_name(name)
        )
        return ok

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    def _on_questions_complete(self, responses: ResponseMap) -> None:
        snapshot = responses.as_dict()
        log.info("questionnaire_completed", answered=len(snapshot))
        if self.on_section_flow_complete is not None:
            self.on_section_flow_complete(snapshot)

        if self.response_submitter is None:
            self._submitted = True
            self._go(Scene.WEARABLE)
            return
        task = asyncio.get_running_loop().create_task(self._submit_responses())
        self._effect_tasks.append(task)

    async def _submit_responses(self) -> bool:
        snapshot = self._responses.as_dict()
        ok, _ = await self._run_effect(
            "submit_responses",
            ResponseSubmissionError,
            lambda: self.response_submitter.submit(snapshot),
        )
        if ok and self._scene is Scene.QUESTIONS:
            self._submitted = True
            self._go(Scene.WEARABLE)
        return ok

    async def retry_submit(self) -> bool:
        """Retry persisting the responses after a failed submission."""
        self._require_scene(Scene.QUESTIONS)
        if self._flow is None or not self._flow.is_complete or self._submitted:
            raise InvalidTransitionError("Nothing to resubmit")
        return await self._submit_responses()

    # ------------------------------------------------------------------
    # Wearable
    # ------------------------------------------------------------------

    async def connect(self, provider_id: str) -> bool:
        """Link a wearable; on success the scene advances after a short delay."""
        self._require_scene(Scene.WEARABLE)
        if self._connection is not None:
            raise InvalidTransitionError("A wearable is already connected")
        if self.device_connector is None:
            self._last_error = DeviceConnectionError("No wearable connector available")
            log.warning("connect_failed", provider=provider_id, error=self._last_error.message)
            return False

        self._connecting_provider = provider_id
        try:
            ok, result = await self._run_effect(
                "connect", DeviceConnectionError, lambda: self.device_connector.connect(provider_id)
            )
        finally:
            self._connecting_provider = None

        if not ok:
            return False
        if result is None:
            self._last_error = DeviceConnectionError(f"Connection to {provider_id} was not completed")
            log.warning("connect_failed", provider=provider_id, error=self._last_error.message)
            return False

        self._connection = result
        log.info("wearable_connected", provider=result.provider_id, athlete=result.athlete_name)
        self._schedule_exit(self.timing.connect_advance_ms)
        return True

    def skip_connect(self) -> None:
        self._require_scene(Scene.WEARABLE)
        if self._connection is not None:
            raise InvalidTransitionError("Already connected")
        log.info("wearable_skipped")
        self._go(Scene.THINKING_STREAM)

    # ------------------------------------------------------------------
    # Handoff
    # ------------------------------------------------------------------

    def finish(self) -> None:
        """Terminal action: onboarding is done."""
        self._require_scene(Scene.HANDOFF)
        self._complete = True
        self._cancel_scene_work()
        log.info("onboarding_completed", display_name=self._display_name)
        if self.on_interview_complete is not None:
            self.on_interview_complete()

    # ------------------------------------------------------------------
    # Scene machinery
    # ------------------------------------------------------------------

    def _require_scene(self, scene: Scene) -> None:
        if not self._started or self._scene is not scene:
            raise InvalidTransitionError(
                f"Action requires scene '{scene.value}', current is '{self._scene.value}'"
            )
        if self._complete:
            raise InvalidTransitionError("Onboarding already finished")
        if self._pending_effect is not None:
            raise InvalidTransitionError(f"Waiting on {self._pending_effect}")
        if scene in USER_GATED and not self._lines_revealed:
            raise InvalidTransitionError(f"Lines of '{scene.value}' are still being revealed")

    def _go(self, scene: Scene) -> None:
        if scene not in TRANSITIONS[self._scene]:
            raise InvalidTransitionError(
                f"Cannot move from '{self._scene.value}' to '{scene.value}'"
            )
        self._enter(scene)

    def _cancel_scene_work(self) -> None:
        self._scheduler.cancel_all()
        if self._sequencer is not None:
            self._sequencer.close()
            self._sequencer = None

    def _enter(self, scene: Scene, resumed: bool = False) -> None:
        self._cancel_scene_work()
        if self._flow is not None and scene is not Scene.QUESTIONS:
            self._flow.close()
            self._flow = None

        previous = self._scene
        self._scene = scene
        self._scene_phase = 0
        self._blocks = []
        self._shown = []
        self._lines_revealed = False
        self._last_error = None
        log.info("scene_entered", scene=scene.value, previous=previous.value, resumed=resumed)

        if scene is Scene.QUESTIONS:
            self._flow = SectionFlow(
                self.questionnaire,
                self.narrative,
                self.timing,
                self._display_name,
                responses=self._responses,
                on_complete=self._on_questions_complete,
                on_lines_revealed=self.on_lines_revealed,
            )
            self._flow.start(resume=resumed)
            return

        if scene is Scene.WEARABLE and resumed and self._connection is not None:
            # Already linked before the app closed: do not reconnect
            self._lines_revealed = True
            self._schedule_exit(self.timing.connect_advance_ms)
            return

        facts = build_facts(self._responses, self._display_name, self.connected_provider)
        self._blocks = self.narrative.render_scene(scene, facts)
        self._play_block(0)

    def _play_block(self, index: int) -> None:
        self._scene_phase = index
        block = self._blocks[index]
        char_ms, initial_ms, pause_ms = self._pacing(block.style)
        self._sequencer = LineSequencer(
            block.lines,
            char_interval_ms=char_ms,
            initial_delay_ms=initial_ms,
            default_pause_ms=pause_ms,
            pause_scale=self.timing.narrative_pause_scale,
            on_complete=lambda: self._block_done(index),
            name=f"{self._scene.value}:{block.name}",
        )
        self._sequencer.start()

    def _block_done(self, index: int) -> None:
        texts = [line.text for line in self._blocks[index].lines]
        self._shown.extend(texts)
        if self.on_lines_revealed is not None:
            self.on_lines_revealed(texts)
        if index + 1 < len(self._blocks):
            self._play_block(index + 1)
            return

        self._scene_phase = len(self._blocks)
        self._lines_revealed = True
        log.debug("scene_lines_revealed", scene=self._scene.value)

        if self._scene is Scene.WELCOME_GOT_IT:
            self._schedule_exit(self.timing.got_it_continue_ms)
        elif self._scene in ANALYSIS_SCENES:
            self._schedule_exit(self.timing.scene_exit_ms)

    def _schedule_exit(self, delay_ms: int) -> None:
        scene = self._scene
        next_scene = TRANSITIONS[scene][-1]

        def exit_scene() -> None:
            if self._scene is scene:
                self._go(next_scene)

        self._scheduler.call_later(delay_ms, exit_scene, label=f"exit:{scene.value}")

    def _pacing(self, style: LineStyle):
        timing = self.timing
        if style is LineStyle.THINKING:
            return timing.thinking_char_ms, 0, timing.thinking_line_pause_ms
        if style is LineStyle.WELCOME:
            initial = (
                timing.got_it_initial_delay_ms
                if self._scene is Scene.WELCOME_GOT_IT
                else timing.welcome_initial_delay_ms
            )
            return timing.welcome_char_ms, initial, timing.default_pause_ms
        return timing.coach_char_ms, timing.initial_delay_ms, timing.default_pause_ms

    def _hide_welcome_back(self) -> None:
        self._welcome_back = False

    async def _run_effect(
        self,
        label: str,
        error_cls: Type[ExternalEffectError],
        effect: Callable[[], Awaitable[Any]],
    ):
        """Await a host effect; failures become `last_error` instead of raising."""
        if self._pending_effect is not None:
            raise InvalidTransitionError(f"Waiting on {self._pending_effect}")

        scene = self._scene
        self._pending_effect = label
        self._last_error = None
        log.info("effect_started", effect=label, scene=scene.value)
        try:
            result = await effect()
        except Exception as e:
            self._last_error = error_cls(str(e) or type(e).__name__)
            log.warning("effect_failed", effect=label, scene=scene.value, error=str(e))
            return False, None
        finally:
            self._pending_effect = None

        if self._scene is not scene:
            log.warning("effect_result_discarded", effect=label, scene=scene.value)
            return False, None
        log.info("effect_succeeded", effect=label, scene=scene.value)
        return True, result

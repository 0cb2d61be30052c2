"""Section flow state machine.

Drives the questionnaire one phase at a time:

    SectionIntro(i) -> QuestionPhase(i, k) ... -> SectionReaction(i) -> SectionIntro(i+1)

Intro and reaction lines are streamed; when they finish the flow advances on
its own (the reaction after a settle delay). Answers advance after a short
highlight delay. Every transition is also exposed as a synchronous method so
the machine can be driven without waiting on timers.
"""

import asyncio
from typing import Callable, List, Optional

import structlog

from cadence.core.config import TimingConfig
from cadence.core.exceptions import InvalidTransitionError
from cadence.domain.models.flow_phase import (
    FlowPhase,
    QuestionPhase,
    SectionIntro,
    SectionReaction,
)
from cadence.domain.models.questionnaire import InputKind, Question, Questionnaire, Section
from cadence.domain.models.responses import ResponseMap
from cadence.services import answer_inputs
from cadence.services.line_sequencer import LineSequencer
from cadence.services.narrative_service import NarrativeService, build_facts
from cadence.services.progress import calculate_progress
from cadence.services.question_graph import (
    phase_after_answer,
    previous_phase,
    resume_phase,
    visible_questions,
)
from cadence.services.scheduling import Scheduler, drain

log = structlog.get_logger(__name__)


class SectionFlow:
    """Walks the runner through every section of the questionnaire."""

    def __init__(
        self,
        questionnaire: Questionnaire,
        narrative: NarrativeService,
        timing: TimingConfig,
        display_name: str,
        responses: Optional[ResponseMap] = None,
        on_complete: Optional[Callable[[ResponseMap], None]] = None,
        on_lines_revealed: Optional[Callable[[List[str]], None]] = None,
    ):
        self.questionnaire = questionnaire
        self.narrative = narrative
        self.timing = timing
        self.display_name = display_name
        self.on_complete = on_complete
        self.on_lines_revealed = on_lines_revealed

        self._responses = responses if responses is not None else ResponseMap()
        self._scheduler = Scheduler("section_flow")
        self._phase: FlowPhase = SectionIntro(section_index=0)
        self._sequencer: Optional[LineSequencer] = None
        self._advance_task: Optional[asyncio.Task] = None
        self._advancing_id: Optional[str] = None
        self._selection: List[str] = []
        self._entry_visible: List[str] = []
        self._started = False
        self._complete = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def phase(self) -> FlowPhase:
        return self._phase

    @property
    def responses(self) -> ResponseMap:
        return self._responses

    @property
    def current_section(self) -> Section:
        return self.questionnaire.sections[self._phase.section_index]

    @property
    def visible_questions(self) -> List[Question]:
        return visible_questions(self.current_section, self._responses)

    @property
    def current_question(self) -> Optional[Question]:
        if not isinstance(self._phase, QuestionPhase) or self._complete:
            return None
        visible = self.visible_questions
        if self._phase.question_index < len(visible):
            return visible[self._phase.question_index]
        return None

    @property
    def selection(self) -> List[str]:
        """Pending multi-select choices for the current question."""
        return list(self._selection)

    @property
    def visible_lines(self) -> List[str]:
        if self._sequencer is None:
            return []
        return self._sequencer.visible_lines

    @property
    def can_go_back(self) -> bool:
        if self._complete or not self._started:
            return False
        return not (isinstance(self._phase, SectionIntro) and self._phase.section_index == 0)

    @property
    def progress(self) -> float:
        if self._complete:
            return 1.0
        return calculate_progress(self.questionnaire, self._responses, self._phase)

    @property
    def is_complete(self) -> bool:
        return self._complete

    @property
    def is_advancing(self) -> bool:
        return self._advance_task is not None and not self._advance_task.done()

    @property
    def is_started(self) -> bool:
        return self._started

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, resume: bool = False) -> None:
        """Enter the first section, or the first unanswered question on resume."""
        if self._started:
            raise InvalidTransitionError("Section flow already started")
        self._started = True

        if not resume:
            self._enter(SectionIntro(section_index=0))
            return

        target = resume_phase(self.questionnaire, self._responses)
        if target is None:
            last = len(self.questionnaire.sections) - 1
            self._enter(SectionReaction(section_index=last))
        else:
            self._enter(target)
        log.info("section_flow_resumed", answered=len(self._responses))

    async def settle(self) -> None:
        """Wait until the flow needs input or is complete."""
        await drain(self.pending_tasks)

    def close(self) -> None:
        self._cancel_pending()
        self.on_complete = None
        self.on_lines_revealed = None

    def pending_tasks(self) -> List[asyncio.Task]:
        tasks = self._scheduler.pending()
        if self._sequencer is not None:
            tasks.extend(self._sequencer.pending_tasks())
        return tasks

    def skip_lines(self) -> None:
        """Reveal the intro or reaction currently streaming at once."""
        if self._sequencer is not None:
            self._sequencer.skip()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def intro_revealed(self) -> None:
        """Section intro finished streaming: move to its first visible question."""
        if not isinstance(self._phase, SectionIntro):
            raise InvalidTransitionError(f"Not in a section intro: {self._phase.kind}")
        self._enter_questions(self._phase.section_index)

    def reaction_revealed(self) -> None:
        """Reaction finished streaming: advance after the settle delay."""
        if not isinstance(self._phase, SectionReaction) or self._complete:
            raise InvalidTransitionError(f"Not in a section reaction: {self._phase.kind}")
        if self.is_advancing:
            return
        self._advance_task = self._scheduler.call_later(
            self.timing.reaction_settle_ms, self.advance_section, label="reaction_settle"
        )

    def advance_section(self) -> None:
        """Leave the current reaction for the next intro, or finish the flow."""
        if not isinstance(self._phase, SectionReaction) or self._complete:
            raise InvalidTransitionError(f"Not in a section reaction: {self._phase.kind}")
        self._advance_task = None
        next_index = self._phase.section_index + 1
        if next_index < len(self.questionnaire.sections):
            self._enter(SectionIntro(section_index=next_index))
        else:
            self._finish()

    def advance(self, answered_id: Optional[str] = None) -> None:
        """Move past an answered question, re-anchoring on its id."""
        if not isinstance(self._phase, QuestionPhase) or self._complete:
            raise InvalidTransitionError(f"Not on a question: {self._phase.kind}")
        if answered_id is None:
            question = self._require_question()
            answered_id = question.id
        if answered_id not in self._responses:
            raise InvalidTransitionError(f"Question '{answered_id}' has no answer yet")

        self._advance_task = None
        target = phase_after_answer(
            self.questionnaire, self._phase.section_index, self._responses, answered_id
        )
        after = [q.id for q in self.visible_questions]
        if after != self._entry_visible:
            log.info(
                "visibility_recomputed",
                section=self.current_section.id,
                answered=answered_id,
                visible=after,
            )
        self._enter(target)

    def back(self) -> None:
        if not self.can_go_back:
            raise InvalidTransitionError("Cannot go back from here")
        target = previous_phase(self.questionnaire, self._responses, self._phase)
        if target is None:
            raise InvalidTransitionError("Cannot go back from here")
        log.info("navigated_back", from_kind=self._phase.kind, to_kind=target.kind)
        self._enter(target)

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    def select_option(self, value: str) -> None:
        question = self._require_question()
        answer = answer_inputs.validate_option(question, value)
        self._record(question, answer)
        self._schedule_advance(question, self.timing.single_select_advance_ms)

    def toggle_option(self, value: str) -> List[str]:
        question = self._require_question()
        self._selection = answer_inputs.toggle_selection(question, self._selection, value)
        return self.selection

    def confirm_selection(self) -> None:
        question = self._require_question()
        answer = answer_inputs.validate_selection(question, self._selection)
        self._record(question, answer)
        self._schedule_advance(question, self.timing.multi_select_advance_ms)

    def submit_text(self, raw: str) -> None:
        question = self._require_question()
        answer = answer_inputs.normalize_text(question, raw)
        self._record(question, answer)
        self._schedule_advance(question, self.timing.text_submit_advance_ms)

    def skip_question(self) -> None:
        question = self._require_question()
        answer = answer_inputs.skip_answer(question)
        self._record(question, answer)
        self._schedule_advance(question, self.timing.text_submit_advance_ms)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_question(self) -> Question:
        question = self.current_question
        if question is None:
            raise InvalidTransitionError(f"No question to answer in phase {self._phase.kind}")
        return question

    def _record(self, question: Question, answer) -> None:
        self._responses.record(question.id, answer)
        log.info("answer_recorded", question=question.id, kind=question.input_kind.value)

    def _schedule_advance(self, question: Question, delay_ms: int) -> None:
        # A second answer during the highlight delay keeps the pending advance
        if self.is_advancing and self._advancing_id == question.id:
            return
        self._scheduler.cancel(self._advance_task)
        self._advancing_id = question.id
        self._advance_task = self._scheduler.call_later(
            delay_ms, lambda: self.advance(question.id), label="answer_advance"
        )

    def _cancel_pending(self) -> None:
        self._scheduler.cancel_all()
        self._advance_task = None
        self._advancing_id = None
        if self._sequencer is not None:
            self._sequencer.close()
            self._sequencer = None

    def _enter_questions(self, section_index: int) -> None:
        section = self.questionnaire.sections[section_index]
        if visible_questions(section, self._responses):
            self._enter(QuestionPhase(section_index=section_index, question_index=0))
        else:
            log.warning("section_has_no_visible_questions", section=section.id)
            self._enter(SectionReaction(section_index=section_index))

    def _enter(self, phase: FlowPhase) -> None:
        self._cancel_pending()
        self._phase = phase
        self._selection = []
        log.info(
            "phase_entered",
            kind=phase.kind,
            section=self.current_section.id,
            question_index=getattr(phase, "question_index", None),
        )

        if isinstance(phase, SectionIntro):
            self._stream([self.current_section.intro], self.intro_revealed, "intro")
        elif isinstance(phase, QuestionPhase):
            question = self.current_question
            if question is None:
                log.warning("question_index_out_of_range", section=self.current_section.id)
                self._enter(SectionReaction(section_index=phase.section_index))
                return
            self._entry_visible = [q.id for q in self.visible_questions]
            stored = self._responses.get(question.id)
            if question.input_kind == InputKind.MULTI_SELECT and isinstance(stored, tuple):
                self._selection = list(stored)
        else:
            facts = build_facts(self._responses, self.display_name)
            lines = self.narrative.render_reaction(self.current_section, facts)
            self._stream(lines, self.reaction_revealed, "reaction")

    def _stream(self, lines, on_complete: Callable[[], None], name: str) -> None:
        sequencer = LineSequencer(
            lines,
            char_interval_ms=self.timing.coach_char_ms,
            initial_delay_ms=self.timing.initial_delay_ms,
            default_pause_ms=self.timing.default_pause_ms,
            pause_scale=self.timing.narrative_pause_scale,
            name=f"{self.current_section.id}:{name}",
        )

        def revealed() -> None:
            if self.on_lines_revealed is not None:
                self.on_lines_revealed([line.text for line in sequencer.lines])
            on_complete()

        sequencer.on_complete = revealed
        self._sequencer = sequencer
        sequencer.start()

    def _finish(self) -> None:
        self._cancel_pending()
        self._complete = True
        self._responses.freeze()
        log.info("section_flow_completed", answered=len(self._responses))
        if self.on_complete is not None:
            self.on_complete(self._responses)

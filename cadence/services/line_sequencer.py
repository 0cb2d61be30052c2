"""Sequential reveal of coach lines.

Only one line streams at a time: line N+1 starts after line N is fully
revealed and its pause has elapsed. The pause after the last line elapses
before on_complete fires.
"""

import asyncio
from typing import Callable, List, Optional, Sequence, Union

import structlog

from cadence.domain.models.narrative import NarrativeLine
from cadence.services.scheduling import Scheduler
from cadence.services.text_stream import TextStream

log = structlog.get_logger(__name__)


class LineSequencer:
    """Streams an ordered list of lines and reports completion once."""

    def __init__(
        self,
        lines: Sequence[Union[NarrativeLine, str]],
        char_interval_ms: int,
        initial_delay_ms: int = 0,
        default_pause_ms: int = 0,
        pause_scale: float = 1.0,
        on_complete: Optional[Callable[[], None]] = None,
        name: str = "lines",
    ):
        self.lines: List[NarrativeLine] = [
            NarrativeLine(text=line) if isinstance(line, str) else line for line in lines
        ]
        self.char_interval_ms = char_interval_ms
        self.initial_delay_ms = initial_delay_ms
        self.default_pause_ms = default_pause_ms
        self.pause_scale = pause_scale
        self.on_complete = on_complete
        self.name = name

        self._scheduler = Scheduler(f"line_sequencer:{name}")
        self._streams: List[TextStream] = []
        self._line_index = -1
        self._skipped = False
        self._complete = False

    @property
    def line_index(self) -> int:
        """Index of the line currently streaming, -1 before start."""
        return self._line_index

    @property
    def is_started(self) -> bool:
        return self._line_index >= 0 or self._complete

    @property
    def is_complete(self) -> bool:
        return self._complete

    @property
    def visible_lines(self) -> List[str]:
        if self._skipped:
            return [line.text for line in self.lines]
        return [stream.revealed for stream in self._streams if stream.is_started]

    def start(self) -> None:
        if self.is_started:
            return
        if not self.lines:
            self._finish()
            return
        self._start_line(0, self.initial_delay_ms)

    def skip(self) -> None:
        """Reveal every line at once and complete."""
        if self._complete:
            return
        self._cancel()
        self._skipped = True
        self._line_index = len(self.lines) - 1
        log.debug("lines_skipped", sequence=self.name)
        self._finish()

    def close(self) -> None:
        self._cancel()
        self.on_complete = None

    def pending_tasks(self) -> List[asyncio.Task]:
        tasks = self._scheduler.pending()
        for stream in self._streams:
            tasks.extend(stream.pending_tasks())
        return tasks

    def _cancel(self) -> None:
        self._scheduler.cancel_all()
        for stream in self._streams:
            stream.close()

    def _start_line(self, index: int, delay_ms: int) -> None:
        self._line_index = index
        stream = TextStream(
            self.lines[index].text,
            char_interval_ms=self.char_interval_ms,
            start_delay_ms=delay_ms,
            on_done=lambda: self._line_done(index),
        )
        self._streams.append(stream)
        stream.activate()

    def _line_done(self, index: int) -> None:
        pause = self.lines[index].pause_after_ms
        if pause is None:
            pause = self.default_pause_ms
        else:
            pause = int(pause * self.pause_scale)

        if index + 1 < len(self.lines):
            self._scheduler.call_later(
                pause, lambda: self._start_line(index + 1, 0), label="next_line"
            )
        else:
            self._scheduler.call_later(pause, self._finish, label="complete")

    def _finish(self) -> None:
        if self._complete:
            return
        self._complete = True
        if self.on_complete is not None:
            self.on_complete()

"""Typewriter reveal of a single piece of text.

A TextStream reveals its text one character per tick once activated:

    stream = TextStream("Got it.", char_interval_ms=18, start_delay_ms=500)
    stream.activate()
    await stream.wait_done()

Changing the text or toggling activation resets the reveal and restarts
the start delay. Deactivating or closing cancels the timer; no tick fires
afterwards. Empty text completes immediately without a timer.
"""

import asyncio
from typing import Callable, List, Optional

import structlog

log = structlog.get_logger(__name__)


class TextStream:
    def __init__(
        self,
        text: str = "",
        char_interval_ms: int = 12,
        start_delay_ms: int = 0,
        active: bool = False,
        on_done: Optional[Callable[[], None]] = None,
        on_tick: Optional[Callable[[str], None]] = None,
    ):
        if char_interval_ms < 0 or start_delay_ms < 0:
            raise ValueError("Stream intervals must be non-negative")
        self._text = text
        self.char_interval_ms = char_interval_ms
        self.start_delay_ms = start_delay_ms
        self.on_done = on_done
        self.on_tick = on_tick

        self._active = False
        self._revealed = ""
        self._started = False
        self._done = False
        self._done_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

        if active:
            self.set_active(True)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def text(self) -> str:
        return self._text

    @property
    def active(self) -> bool:
        return self._active

    @property
    def revealed(self) -> str:
        return self._revealed

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def is_done(self) -> bool:
        return self._done

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def set_text(self, text: str) -> None:
        if text == self._text:
            return
        self._text = text
        self._restart()

    def set_active(self, active: bool) -> None:
        if active == self._active:
            return
        self._active = active
        self._restart()

    def activate(self) -> None:
        self.set_active(True)

    def deactivate(self) -> None:
        self.set_active(False)

    def close(self) -> None:
        """Detach: cancel the timer and drop callbacks."""
        self._cancel()
        self.on_done = None
        self.on_tick = None

    async def wait_done(self) -> None:
        await self._done_event.wait()

    def pending_tasks(self) -> List[asyncio.Task]:
        if self._task is not None and not self._task.done():
            return [self._task]
        return []

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            log.debug("stream_cancelled", revealed=len(self._revealed), total=len(self._text))
        self._task = None

    def _restart(self) -> None:
        self._cancel()
        self._revealed = ""
        self._started = False
        self._done = False
        self._done_event.clear()

        if not self._active:
            return

        if not self._text:
            self._finish()
            return

        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        if self.start_delay_ms:
            await asyncio.sleep(self.start_delay_ms / 1000)
        self._started = True

        interval = self.char_interval_ms / 1000
        for end in range(1, len(self._text) + 1):
            await asyncio.sleep(interval)
            self._revealed = self._text[:end]
            if self.on_tick is not None:
                self.on_tick(self._revealed)

        self._task = None
        self._finish()

    def _finish(self) -> None:
        self._started = True
        self._done = True
        self._revealed = self._text
        self._done_event.set()
        if self.on_done is not None:
            self.on_done()

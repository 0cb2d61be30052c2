"""Cancellable delayed callbacks on the running event loop.

Every timer in the onboarding engine is an asyncio task owned by a
Scheduler, so a scene or section change can cancel all of its pending work
in one call and tests can wait for the engine to go quiet with drain().
A callback that raises is logged and its task exception is marked as
retrieved, so hosts that never drain get no asyncio warning. drain()
still re-raises it.
"""

import asyncio
from typing import Callable, Iterable, List, Optional, Set

import structlog

log = structlog.get_logger(__name__)


class Scheduler:
    """Owns the delayed callbacks of one state machine."""

    def __init__(self, owner: str):
        self.owner = owner
        self._tasks: Set[asyncio.Task] = set()

    def call_later(
        self, delay_ms: int, callback: Callable[[], None], label: str = ""
    ) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(
            self._run(delay_ms, callback, label)
        )
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled():
            # Marks the failure as retrieved; it was logged in _run
            task.exception()

    async def _run(self, delay_ms: int, callback: Callable[[], None], label: str) -> None:
        await asyncio.sleep(delay_ms / 1000)
        try:
            callback()
        except Exception as e:
            log.error(
                "scheduled_callback_failed",
                owner=self.owner,
                label=label,
                error=str(e),
                exc_info=True,
            )
            raise

    def cancel(self, task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def pending(self) -> List[asyncio.Task]:
        return [t for t in self._tasks if not t.done()]


async def drain(get_pending: Callable[[], Iterable[asyncio.Task]]) -> None:
    """Wait until no pending task remains, re-raising the first task failure.

    Tasks created while waiting are picked up on the next round.
    """
    while True:
        await asyncio.sleep(0)
        pending = [t for t in get_pending() if not t.done()]
        if not pending:
            return
        done, _ = await asyncio.wait(pending)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

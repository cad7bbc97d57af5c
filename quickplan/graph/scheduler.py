"""
Cancelable deferred actions.

Used for follow-ups that should happen a moment after a state change (the
automatic finalize after the user is satisfied). Each action remembers the
context it was scheduled for and becomes a no-op if, when it fires, that
context is no longer the live one.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional


logger = logging.getLogger(__name__)


class DeferredActionScheduler:
    """
    Schedules coroutines to run after a delay on the running event loop.

    Args:
        live_context: Returns the context that is current right now
    """

    def __init__(self, live_context: Callable[[], Any]):
        self._live_context = live_context
        self._tasks: Dict[str, "asyncio.Task[None]"] = {}

    def schedule(
        self,
        name: str,
        delay: float,
        action: Callable[[], Awaitable[Any]],
    ) -> "asyncio.Task[None]":
        """Run action after delay unless cancelled or the context was replaced."""
        self.cancel(name)
        scheduled_for = self._live_context()
        task = asyncio.ensure_future(self._run(name, delay, action, scheduled_for))
        self._tasks[name] = task
        task.add_done_callback(lambda t, n=name: self._forget(n, t))
        return task

    async def _run(
        self,
        name: str,
        delay: float,
        action: Callable[[], Awaitable[Any]],
        scheduled_for: Any,
    ) -> None:
        await asyncio.sleep(delay)
        if self._live_context() is not scheduled_for:
            logger.info(f"[component=scheduler] Dropping '{name}': conversation was reset")
            return
        try:
            await action()
        except Exception as e:
            # Deferred actions have no caller to raise into
            logger.exception(f"[component=scheduler] Deferred action '{name}' failed: {e}")

    def _forget(self, name: str, task: "asyncio.Task[None]") -> None:
        if self._tasks.get(name) is task:
            del self._tasks[name]

    def pending(self, name: str) -> Optional["asyncio.Task[None]"]:
        return self._tasks.get(name)

    def cancel(self, name: str) -> bool:
        task = self._tasks.pop(name, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_all(self) -> int:
        cancelled = 0
        for name in list(self._tasks):
            if self.cancel(name):
                cancelled += 1
        return cancelled

"""Keyed scheduler for delayed and periodic callbacks.

Every timer the runtime owns (name rotation per room, the vote-ban sweep,
delayed command cleanup) lives here under a string key, so any of them can be
replaced or cancelled individually and all of them stop on :meth:`shutdown`.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Union

from voicewarden.util.logger import get_logger

logger = get_logger("task_scheduler")

Callback = Callable[[], Union[Awaitable[Any], Any]]


async def _invoke(callback: Callback) -> None:
    result = callback()
    if inspect.isawaitable(result):
        await result


class TaskScheduler:
    """
    Runs one asyncio task per key.

    Scheduling a key that already has a live task cancels the old task first.
    Callback errors are logged; a repeating task keeps running after a failure.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_once(self, key: str, delay: float, callback: Callback) -> asyncio.Task:
        """Run ``callback`` once after ``delay`` seconds."""
        return self._start(key, self._run_once(key, max(0.0, delay), callback))

    def schedule_repeating(
        self,
        key: str,
        interval: float,
        callback: Callback,
        *,
        run_immediately: bool = False,
    ) -> asyncio.Task:
        """Run ``callback`` every ``interval`` seconds until cancelled.

        Raises:
            ValueError: If ``interval`` is not positive.
        """
        if interval <= 0:
            raise ValueError(f"Repeating interval must be positive, got {interval}")
        return self._start(key, self._run_loop(key, interval, callback, run_immediately))

    def cancel(self, key: str) -> bool:
        """Cancel the task under ``key``. Returns False if nothing was scheduled."""
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("[TASK SCHEDULER] Cancelled %s", key)
        return True

    def cancel_prefix(self, prefix: str) -> int:
        cancelled = 0
        for key in [k for k in self._tasks if k.startswith(prefix)]:
            if self.cancel(key):
                cancelled += 1
        return cancelled

    def is_scheduled(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    @property
    def keys(self) -> List[str]:
        return [key for key, task in self._tasks.items() if not task.done()]

    async def shutdown(self) -> None:
        """Cancel every task and wait for them to finish."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("[TASK SCHEDULER] Scheduler shutdown complete")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _start(self, key: str, coro: Awaitable[None]) -> asyncio.Task:
        self.cancel(key)
        task = asyncio.get_running_loop().create_task(coro, name=f"voicewarden-{key}")
        self._tasks[key] = task

        def _cleanup(completed: asyncio.Task) -> None:
            if self._tasks.get(key) is completed:
                del self._tasks[key]

        task.add_done_callback(_cleanup)
        return task

    async def _run_once(self, key: str, delay: float, callback: Callback) -> None:
        await asyncio.sleep(delay)
        try:
            await _invoke(callback)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[TASK SCHEDULER] One-shot task %s failed", key)

    async def _run_loop(self, key: str, interval: float, callback: Callback, run_immediately: bool) -> None:
        logger.debug("[TASK SCHEDULER] Starting %s (interval=%.1fs)", key, interval)
        if not run_immediately:
            await asyncio.sleep(interval)
        while True:
            try:
                await _invoke(callback)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("[TASK SCHEDULER] Repeating task %s failed", key)
            await asyncio.sleep(interval)

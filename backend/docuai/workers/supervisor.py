"""
In-process task supervisor for pipeline runs.

Pipeline runs are spawned as named asyncio tasks on the API process's event
loop (single process, cooperative concurrency). The supervisor keeps a
handle to every in-flight run so that:

  - /ready can report how many runs are in flight (active())
  - tests can wait for background work deterministically (join())
  - the app lifespan drains outstanding runs on shutdown (shutdown())

There is no admission cap: every upload gets its own task immediately.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class TaskSupervisor:

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}
        self._closed = False

    def spawn(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Schedule `coro` as a tracked task. Names must be unique while running."""
        if self._closed:
            coro.close()
            raise RuntimeError("TaskSupervisor is shut down; no new tasks accepted")
        if name in self._tasks:
            coro.close()
            raise ValueError(f"A task named {name!r} is already running")

        task = asyncio.create_task(coro, name=name)
        self._tasks[name] = task
        task.add_done_callback(self._on_done)
        logger.info("Task spawned | name=%s in_flight=%d", name, len(self._tasks))
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.pop(task.get_name(), None)
        if task.cancelled():
            logger.warning("Task cancelled | name=%s", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Task crashed | name=%s error=%s", task.get_name(), exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def active(self) -> list[str]:
        """Names of runs still in flight."""
        return sorted(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    async def join(self) -> None:
        """Wait until every task (including ones spawned meanwhile) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self, timeout: float) -> None:
        """
        Stop accepting work, wait up to `timeout` seconds for in-flight runs,
        then cancel whatever is left.
        """
        self._closed = True
        pending = list(self._tasks.values())
        if not pending:
            return

        logger.info("Draining %d in-flight task(s) | timeout=%.1fs", len(pending), timeout)
        _, still_running = await asyncio.wait(pending, timeout=timeout)

        for task in still_running:
            logger.warning("Cancelling task at shutdown | name=%s", task.get_name())
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)

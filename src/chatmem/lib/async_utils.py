"""Async utilities shared across chatmem modules."""

import asyncio
import logging
from collections.abc import Awaitable, Coroutine
from typing import Any, TypeVar

from chatmem.errors import CollaboratorError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_async(coro):
    """Run an async coroutine in a sync context.

    NOTE: This is for sync contexts only (CLI). Inside the event loop,
    await the async methods directly.

    Raises RuntimeError if called from an async context.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop is not None:
        raise RuntimeError(
            "Cannot use sync method from async context. "
            "Await the async version instead."
        )
    return asyncio.run(coro)


async def with_timeout(aw: Awaitable[T], seconds: float, collaborator: str) -> T:
    """Await a collaborator call, converting a missed deadline into CollaboratorError."""
    try:
        return await asyncio.wait_for(aw, timeout=seconds)
    except TimeoutError as e:
        raise CollaboratorError(collaborator, f"timed out after {seconds:.1f}s") from e


class BackgroundTasks:
    """Fire-and-forget task spawner.

    Holds a reference to every running task so it is not garbage collected,
    logs and swallows failures, and lets tests or shutdown code wait for
    everything that is still in flight.
    """

    def __init__(self, name: str = "background"):
        self.name = name
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task:
        """Schedule a coroutine on the running loop and return its task."""
        task = asyncio.get_running_loop().create_task(coro, name=f"{self.name}:{label}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug(f"[TASKS] {task.get_name()} cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[TASKS] {task.get_name()} failed: {exc!r}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every spawned task, including ones spawned meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

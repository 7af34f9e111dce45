"""Detached background work with an explicit error channel.

Recomputations triggered by the regeneration pipeline must never block it and
must never propagate into its result. Tasks are held in a set until they
finish (the event loop only keeps weak references) and failures are logged
and recorded in :attr:`BackgroundDispatcher.failures`. Callers that want a
task's outcome keep the task returned by :meth:`BackgroundDispatcher.submit`.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from functools import partial
from typing import Any

log = logging.getLogger(__name__)


class BackgroundDispatcher:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self.failures: list[tuple[str, str]] = []

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(partial(self._on_done, name))
        return task

    def _on_done(self, name: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            log.info("Background task %s cancelled", name)
            return
        exc = task.exception()
        if exc is None:
            return
        log.warning("Background task %s failed: %s", name, exc)
        self.failures.append((name, str(exc)))

    async def drain(self) -> None:
        """Wait until every submitted task (including ones submitted meanwhile) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

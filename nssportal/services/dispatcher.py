"""
nssportal.services.dispatcher — Background Fan-out Tasks
=========================================================

Workflows return to their caller as soon as state and scores are
committed; notification delivery continues on the event loop.  The
dispatcher keeps a strong reference to every in-flight task (so it isn't
garbage-collected mid-send), logs anything that escapes, and lets shutdown
code and tests wait for the backlog with :meth:`drain`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine, Sequence
from typing import Any

from nssportal.services.notification_fanout import (
    FanoutResult,
    NotificationFanout,
    NotificationPayload,
    Recipient,
)

logger = logging.getLogger(__name__)


class FanoutDispatcher:
    """Schedules fan-outs as fire-and-forget asyncio tasks."""

    def __init__(self, fanout: NotificationFanout, *, keep_results: bool = False) -> None:
        self.fanout = fanout
        self.keep_results = keep_results
        self.completed: list[FanoutResult] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _spawn(self, coro: Coroutine[Any, Any, FanoutResult], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Fan-out task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Fan-out task %s crashed", task.get_name(), exc_info=exc)
            return
        if self.keep_results:
            self.completed.append(task.result())

    def dispatch(
        self, recipients: Sequence[Recipient], payload: NotificationPayload
    ) -> asyncio.Task:
        """Start ``fanout.notify(recipients, payload)`` without awaiting it."""
        return self._spawn(
            self.fanout.notify(list(recipients), payload),
            name=f"fanout-{payload.type}",
        )

    async def drain(self) -> None:
        """Wait until every in-flight fan-out has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            await asyncio.sleep(0)

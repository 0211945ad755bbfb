"""Cancellable periodic asyncio tasks."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

_logger = logging.getLogger(__name__)


@dataclass
class PeriodicTask:
    """Run a coroutine callback every ``interval_seconds`` until cancelled.

    A failing tick is logged and the loop keeps going.
    """

    name: str
    interval_seconds: float
    callback: Callable[[], Awaitable[object]]
    _task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop on the running event loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        _logger.debug(
            "Periodic task %s started (every %ss)", self.name, self.interval_seconds
        )
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.callback()
            except Exception:
                _logger.exception("Periodic task %s failed", self.name)

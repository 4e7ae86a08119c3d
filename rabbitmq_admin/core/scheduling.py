"""
Periodic Task Scheduling.

Cancellable repeating timers for the cache cleanup sweep, statistics
polling, auto-refresh and staleness checks.

Features:
- Self-rescheduling loop (next tick is scheduled after the current one finishes)
- Sync or async callbacks
- Callback failures are logged and never stop the loop
- Explicit start/stop lifecycle

Usage:
    from rabbitmq_admin.core.scheduling import PeriodicTask

    task = PeriodicTask(60.0, cache.cleanup, name="cache-cleanup")
    task.start()
    ...
    await task.stop()
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from datetime import timedelta
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

TickCallback = Callable[[], Any]


def to_seconds(value: timedelta | float | int) -> float:
    """Normalize a duration given as timedelta or seconds."""
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class PeriodicTask:
    """
    Repeating timer handle bound to the running event loop.

    The loop sleeps ``interval`` seconds, runs the callback, and repeats
    until ``stop()`` or ``cancel()`` is called.
    """

    def __init__(
        self,
        interval: timedelta | float,
        callback: TickCallback,
        name: str = "periodic-task",
    ):
        """
        Initialize a periodic task.

        Args:
            interval: Delay between ticks (timedelta or seconds)
            callback: Sync or async callable run on every tick
            name: Task name used in logs and asyncio task names
        """
        seconds = to_seconds(interval)
        if seconds <= 0:
            raise ValueError(f"interval must be positive, got {seconds}")

        self.interval = seconds
        self.name = name
        self._callback = callback
        self._task: asyncio.Task | None = None
        self._ticks = 0
        self._logger = logger.bind(component="PeriodicTask", task=name)

    @property
    def is_running(self) -> bool:
        """Whether the loop task is alive."""
        return self._task is not None and not self._task.done()

    @property
    def ticks(self) -> int:
        """Number of completed ticks."""
        return self._ticks

    def start(self) -> None:
        """Start the loop. Calling start on a running task is a no-op."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        self._logger.debug("Periodic task started", interval=self.interval)

    def cancel(self) -> None:
        """Cancel the loop without waiting for it to finish."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def stop(self) -> None:
        """Cancel the loop and wait for it to exit."""
        task = self._task
        self._task = None
        if task is None or task.done():
            return

        task.cancel()
        # A tick callback may stop its own timer
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._logger.debug("Periodic task stopped", ticks=self._ticks)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._logger.warning("Periodic task tick failed", error=str(e))
            self._ticks += 1

"""
Scheduler module for periodic background jobs.

Tasks run on a fixed interval. Stopping the scheduler cancels the wait
between runs but never an in-flight callback: a running job finishes, and no
further run is started afterwards.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .audit_logger import AuditLogger, ComponentLogging


@dataclass
class ScheduledTask:
    """A job registered with the scheduler."""

    name: str
    interval_seconds: float
    callback: Callable[[], Awaitable[object]]
    next_run: float = 0.0
    last_run: Optional[float] = None
    run_count: int = 0
    enabled: bool = True


class IntervalScheduler(ComponentLogging):
    """
    Runs registered coroutines every ``interval_seconds``.

    A single loop drives all tasks, so two runs of the same task never
    overlap.
    """

    COMPONENT = "Scheduler"

    def __init__(
        self,
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._logger = logger
        self._clock = clock
        self._tasks: dict[str, ScheduledTask] = {}
        self._running = False
        self._stop_requested = False
        self._stop_event: Optional[asyncio.Event] = None

    def schedule(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[object]],
        run_immediately: bool = True,
    ) -> ScheduledTask:
        """
        Register a task.

        Args:
            name: Unique name for the task
            interval_seconds: Time between the starts of two runs
            callback: Async function to call
            run_immediately: Run once as soon as the loop starts

        Raises:
            ValueError: If the name is taken or the interval is not positive
        """
        if name in self._tasks:
            raise ValueError(f"Task '{name}' already exists")
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

        now = self._clock()
        task = ScheduledTask(
            name=name,
            interval_seconds=interval_seconds,
            callback=callback,
            next_run=now if run_immediately else now + interval_seconds,
        )
        self._tasks[name] = task
        return task

    def unschedule(self, name: str) -> bool:
        return self._tasks.pop(name, None) is not None

    def get_task(self, name: str) -> Optional[ScheduledTask]:
        return self._tasks.get(name)

    async def run(self) -> None:
        """
        Run the scheduler loop until ``stop`` is called.

        Callback exceptions are logged and do not stop the loop. A scheduler
        that was stopped never runs again.
        """
        if self._stop_requested:
            return
        self._running = True
        self._stop_event = asyncio.Event()

        while not self._stop_requested:
            for task in list(self._tasks.values()):
                if self._stop_requested:
                    break
                if not task.enabled or task.next_run > self._clock():
                    continue
                task.last_run = self._clock()
                task.next_run = task.last_run + task.interval_seconds
                task.run_count += 1
                try:
                    await task.callback()
                except Exception as e:
                    self._log_error(f"Scheduled task '{task.name}' failed", e)

            if self._stop_requested:
                break

            await self._sleep_until_next_run()

        self._running = False

    async def _sleep_until_next_run(self) -> None:
        pending = [t.next_run for t in self._tasks.values() if t.enabled]
        delay = max(0.0, min(pending) - self._clock()) if pending else 1.0
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def stop(self) -> None:
        """Stop scheduling new runs; an in-flight callback completes."""
        self._stop_requested = True
        if self._stop_event is not None:
            self._stop_event.set()

    def is_running(self) -> bool:
        return self._running

"""
Interval Scheduler — runs an async job on a fixed interval.

Lifecycle:
    stopped ──start()──▶ running ──stop()──▶ stopped

The job is invoked once immediately on start, then once per tick. Ticks are
free-running (deadline = started_at + k * interval). If the job overruns one
or more ticks, it runs once more right away and the other missed ticks are
dropped, never queued, so at most one invocation is in flight per scheduler.

The job receives the scheduler's own stop event. It is created at start()
time and is independent of whoever called start(), so a job started from a
short-lived request keeps running after that request ends. Jobs that block
for long should check the event themselves.

Usage:
    async def job(stop_event: asyncio.Event) -> None:
        ...

    scheduler = IntervalScheduler(job, interval=120)
    await scheduler.start()
    ...
    await scheduler.stop()
"""
from __future__ import annotations

import abc
import asyncio
import structlog
from typing import Any, Awaitable, Callable, Optional

from core.errors import AppError

Job = Callable[[asyncio.Event], Awaitable[Any]]

DEFAULT_STOP_TIMEOUT = 5.0


# ══════════════════════════════════════════════════════════════
#  ERRORS
# ══════════════════════════════════════════════════════════════

class SchedulerError(AppError):
    code = "SCHEDULER_ERROR"
    message = "Scheduler error"


class InvalidIntervalError(SchedulerError):
    code = "SCHEDULER_INVALID_INTERVAL"
    message = "Interval must be positive"
    status_code = 400


class NilJobError(SchedulerError):
    code = "SCHEDULER_NIL_JOB"
    message = "Job cannot be nil"
    status_code = 400


class AlreadyRunningError(SchedulerError):
    code = "SCHEDULER_ALREADY_RUNNING"
    message = "Scheduler already running"
    status_code = 409


class NotRunningError(SchedulerError):
    code = "SCHEDULER_NOT_RUNNING"
    message = "Scheduler not running"
    status_code = 409


# ══════════════════════════════════════════════════════════════
#  SCHEDULER
# ══════════════════════════════════════════════════════════════

class Scheduler(abc.ABC):
    """Start/stop-able background executor."""

    @abc.abstractmethod
    async def start(self) -> None:
        """Begin executing the job. Returns without waiting for it."""
        ...

    @abc.abstractmethod
    async def stop(self, timeout: Optional[float] = None) -> None:
        """Stop executing the job, waiting for the loop to finish."""
        ...

    @abc.abstractmethod
    def is_running(self) -> bool:
        ...


class IntervalScheduler(Scheduler):
    """Runs `job` immediately and then every `interval` seconds."""

    def __init__(
        self,
        job: Optional[Job],
        interval: float,
        name: str = "scheduler",
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        logger: Any = None,
    ):
        if interval is None or interval <= 0:
            raise InvalidIntervalError()
        if job is None:
            raise NilJobError()

        self.job = job
        self.interval = float(interval)
        self.name = name
        self.stop_timeout = stop_timeout
        self._log = (logger if logger is not None else structlog.get_logger()).bind(scheduler=name)

        self._lock = asyncio.Lock()
        self._running = False
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        # Loop left behind by a stop() that timed out
        self._lingering: Optional[asyncio.Task] = None

    async def start(self) -> None:
        async with self._lock:
            if self._running:
                raise AlreadyRunningError()

            previous = self._lingering if self._lingering and not self._lingering.done() else None
            self._lingering = None

            self._stop_event = asyncio.Event()
            self._task = asyncio.create_task(
                self._run(self._stop_event, previous),
                name=f"{self.name}_loop",
            )
            self._running = True
            self._log.info("scheduler_started", interval_s=self.interval)

    async def stop(self, timeout: Optional[float] = None) -> None:
        timeout = self.stop_timeout if timeout is None else timeout
        async with self._lock:
            if not self._running:
                raise NotRunningError()

            self._stop_event.set()
            task = self._task

            # asyncio.wait leaves the task running on timeout
            done, _ = await asyncio.wait({task}, timeout=timeout)
            if not done:
                self._lingering = task
                self._log.warning("scheduler_stop_timeout", timeout_s=timeout)

            self._running = False
            self._task = None
            self._log.info("scheduler_stopped")

    def is_running(self) -> bool:
        return self._running

    async def _run(self, stop_event: asyncio.Event, previous: Optional[asyncio.Task]) -> None:
        if previous is not None:
            self._log.info("scheduler_waiting_for_previous_loop")
            await asyncio.wait({previous})

        loop = asyncio.get_running_loop()
        started_at = loop.time()

        self._log.info("scheduler_loop_started", immediate=True)
        await self._execute(stop_event)

        ticks = 1
        while not stop_event.is_set():
            next_tick = started_at + ticks * self.interval
            now = loop.time()
            if next_tick > now:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=next_tick - now)
                    break
                except asyncio.TimeoutError:
                    pass
                ticks += 1
            else:
                # A tick fell due while the job was running: fire it once, drop the rest
                missed = int((now - next_tick) // self.interval) + 1
                ticks += missed
                if missed > 1:
                    self._log.debug("scheduler_ticks_dropped", dropped=missed - 1)

            self._log.debug("scheduler_tick")
            await self._execute(stop_event)

        self._log.info("scheduler_loop_exited")

    async def _execute(self, stop_event: asyncio.Event) -> None:
        """Run the job once. Nothing raised by the job escapes this call."""
        try:
            await self.job(stop_event)
        except asyncio.CancelledError:
            raise
        except AppError as e:
            self._log.warning("scheduler_job_error", error=str(e), code=e.code,
                              note="will retry on next tick")
        except Exception as e:
            self._log.error("scheduler_job_panicked", error=str(e),
                            error_type=type(e).__name__, exc_info=True)

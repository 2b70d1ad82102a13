"""
MessageSenderJob — runs the message sender on an interval scheduler.

    job = MessageSenderJob(sender, interval=120)
    await job.start()        # first cycle runs immediately
    job.is_running()
    await job.stop()
"""
from __future__ import annotations

import asyncio
import structlog
from typing import Any, Optional

from core.errors import AppError, SchedulerInitFailedError
from models.schemas import CycleResult
from scheduler.scheduler import DEFAULT_STOP_TIMEOUT, IntervalScheduler, Scheduler
from services.sender import MessageSenderService


class MessageSenderJob:

    def __init__(
        self,
        sender: MessageSenderService,
        interval: float,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        logger: Any = None,
    ):
        self.sender = sender
        self._log = logger if logger is not None else structlog.get_logger()
        try:
            self.scheduler: Scheduler = IntervalScheduler(
                self.run, interval,
                name="message_sender",
                stop_timeout=stop_timeout,
                logger=self._log,
            )
        except AppError as e:
            raise SchedulerInitFailedError().with_error(e) from e

    async def run(self, stop_event: asyncio.Event) -> CycleResult:
        """One scheduled cycle. Errors are logged and re-raised to the scheduler."""
        self._log.info("sender_cycle_started")
        try:
            result = await self.sender.send_pending_messages(stop_event)
        except Exception as e:
            counts = e.result.to_dict() if getattr(e, "result", None) is not None else {}
            self._log.error("sender_cycle_failed", error=str(e), **counts)
            raise
        self._log.info("sender_cycle_completed", **result.to_dict())
        return result

    async def start(self) -> None:
        self._log.info("sender_job_starting")
        await self.scheduler.start()

    async def stop(self, timeout: Optional[float] = None) -> None:
        self._log.info("sender_job_stopping")
        await self.scheduler.stop(timeout)

    def is_running(self) -> bool:
        return self.scheduler.is_running()

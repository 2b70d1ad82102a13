"""
Message sender — one dispatch cycle over a batch of pending messages.

Cycle:
  1. Fetch up to batch_size pending messages, oldest first
  2. For each: POST through the transport, then mark it sent
  3. Write-through to the sent-message cache when one is configured
  4. Report the cycle as failed according to the aggregate policy

A failing message never aborts the batch; it is handled by the failure
policy and recorded as a failed outcome.
"""
from __future__ import annotations

import asyncio
import structlog
from typing import Any, Optional, Union

from cache.message_cache import MessageCache
from channels.base import MessageTransport, SendMessageRequest
from core.errors import (
    AppError,
    MarkFailedFailedError,
    MarkSentFailedError,
    MessageSendFailedError,
    WebhookCallFailedError,
)
from models.schemas import (
    AggregatePolicy, CycleResult, DispatchOutcome, FailurePolicy, Message, utcnow,
)
from services.message_service import MessageService

DEFAULT_BATCH_SIZE = 2


class MessageSenderService:

    def __init__(
        self,
        message_service: MessageService,
        transport: MessageTransport,
        batch_size: int = DEFAULT_BATCH_SIZE,
        cache: Optional[MessageCache] = None,
        failure_policy: Union[FailurePolicy, str] = FailurePolicy.RETRY,
        max_attempts: int = 5,
        aggregate_policy: Union[AggregatePolicy, str] = AggregatePolicy.ALL,
        logger: Any = None,
    ):
        self.messages = message_service
        self.transport = transport
        self.batch_size = batch_size if batch_size > 0 else DEFAULT_BATCH_SIZE
        self.cache = cache
        self.failure_policy = FailurePolicy(failure_policy)
        self.max_attempts = max(1, max_attempts)
        self.aggregate_policy = AggregatePolicy(aggregate_policy)
        self._log = logger if logger is not None else structlog.get_logger()

    async def send_pending_messages(self, stop_event: Optional[asyncio.Event] = None) -> CycleResult:
        """
        Run one cycle. Raises MessageListFailedError when the batch cannot be
        fetched and MessageSendFailedError when the aggregate policy trips.
        """
        messages = await self.messages.get_pending(self.batch_size)
        result = CycleResult(fetched=len(messages))
        if not messages:
            self._log.debug("no_pending_messages")
            return result

        for i, msg in enumerate(messages):
            if stop_event is not None and stop_event.is_set():
                self._log.info("sender_cycle_interrupted",
                               attempted=i, left_pending=len(messages) - i)
                break
            result.outcomes.append(await self._dispatch(msg))

        if self._cycle_failed(result):
            err = MessageSendFailedError(
                f"{result.failed} of {result.attempted} messages failed",
            )
            err.result = result
            raise err
        return result

    def _cycle_failed(self, result: CycleResult) -> bool:
        if result.failed == 0:
            return False
        if self.aggregate_policy == AggregatePolicy.ANY:
            return True
        return result.failed == result.attempted

    # ── Per-message dispatch ──────────────────────────────

    async def _dispatch(self, msg: Message) -> DispatchOutcome:
        request = SendMessageRequest(to=msg.phone_number, content=msg.content)
        try:
            response = await self.transport.send_message(request)
        except Exception as e:
            err = WebhookCallFailedError().with_error(e)
            self._log.warning("message_send_failed", id=msg.id, error=str(err))
            await self._apply_failure_policy(msg)
            return DispatchOutcome(message_id=msg.id, success=False, error=str(err))

        try:
            sent_at = await self.messages.set_sent(msg.id, response.message_id, utcnow())
        except AppError as e:
            # Delivered but not recorded: the message stays pending and may be re-sent.
            err = MarkSentFailedError().with_error(e)
            self._log.error("message_mark_sent_failed", id=msg.id,
                            external_id=response.message_id, error=str(err))
            return DispatchOutcome(message_id=msg.id, success=False,
                                   external_id=response.message_id, error=str(err))

        self._log.info("message_sent", id=msg.id, external_id=response.message_id)
        await self._write_cache(response.message_id, sent_at)
        return DispatchOutcome(message_id=msg.id, success=True, external_id=response.message_id)

    async def _apply_failure_policy(self, msg: Message) -> None:
        try:
            if self.failure_policy == FailurePolicy.FAIL:
                await self.messages.set_failed(msg.id)
                self._log.info("message_marked_failed", id=msg.id)
            elif self.failure_policy == FailurePolicy.BOUNDED:
                attempts = await self.messages.record_attempt(msg.id)
                if attempts >= self.max_attempts:
                    await self.messages.set_failed(msg.id)
                    self._log.info("message_marked_failed", id=msg.id, attempts=attempts)
        except AppError as e:
            err = MarkFailedFailedError().with_error(e)
            self._log.error("message_mark_failed_failed", id=msg.id, error=str(err))

    async def _write_cache(self, external_id: str, sent_at) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.cache_sent_message(external_id, sent_at)
        except Exception as e:
            self._log.warning("message_cache_write_failed", external_id=external_id, error=str(e))

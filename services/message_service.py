"""
Message service — business rules over the message store.

The store raises plain exceptions; everything leaving this module is an
AppError with a stable code the API and the sender can act on.
"""
from __future__ import annotations

import structlog
from datetime import datetime
from typing import Any, Optional

from core.errors import (
    MessageCreateFailedError,
    MessageDeleteFailedError,
    MessageListFailedError,
    MessageNotEditableError,
    MessageNotFoundError,
    MessageUpdateFailedError,
)
from database.store_base import BaseMessageStore
from models.schemas import Message, utcnow

logger = structlog.get_logger()


class MessageService:
    """CRUD and status transitions for messages."""

    def __init__(self, store: BaseMessageStore):
        self.store = store

    # ── CRUD ──────────────────────────────────────────────

    async def create(self, phone_number: str, content: str) -> Message:
        try:
            msg = await self.store.create(phone_number, content)
        except Exception as e:
            raise MessageCreateFailedError().with_error(e) from e
        logger.info("message_created", id=msg.id, phone_number=phone_number)
        return msg

    async def get(self, message_id: int) -> Message:
        try:
            msg = await self.store.get(message_id)
        except Exception as e:
            raise MessageListFailedError().with_error(e) from e
        if msg is None:
            raise MessageNotFoundError()
        return msg

    async def list_messages(self, limit: int = 50, offset: int = 0) -> list[Message]:
        try:
            return await self.store.list_messages(limit=limit, offset=offset)
        except Exception as e:
            raise MessageListFailedError().with_error(e) from e

    async def list_sent(self, limit: int = 50, offset: int = 0) -> list[Message]:
        try:
            return await self.store.list_sent(limit=limit, offset=offset)
        except Exception as e:
            raise MessageListFailedError().with_error(e) from e

    async def update(self, message_id: int, changes: dict[str, Any]) -> Message:
        """Edit phone_number / content. Only pending messages can be edited."""
        current = await self.get(message_id)
        if not current.is_pending:
            raise MessageNotEditableError()
        try:
            msg = await self.store.update(message_id, **changes)
        except Exception as e:
            raise MessageUpdateFailedError().with_error(e) from e
        if msg is None:
            raise MessageNotFoundError()
        logger.info("message_updated", id=message_id, fields=sorted(changes))
        return msg

    async def delete(self, message_id: int) -> None:
        try:
            deleted = await self.store.delete(message_id)
        except Exception as e:
            raise MessageDeleteFailedError().with_error(e) from e
        if not deleted:
            raise MessageNotFoundError()
        logger.info("message_deleted", id=message_id)

    # ── Send queue ────────────────────────────────────────

    async def get_pending(self, limit: int) -> list[Message]:
        try:
            return await self.store.get_pending(limit)
        except Exception as e:
            raise MessageListFailedError().with_error(e) from e

    async def set_sent(
        self, message_id: int, external_id: str, sent_at: Optional[datetime] = None,
    ) -> datetime:
        """Mark a message delivered. Returns the recorded sent_at."""
        sent_at = sent_at or utcnow()
        try:
            updated = await self.store.mark_sent(message_id, external_id, sent_at)
        except Exception as e:
            raise MessageUpdateFailedError().with_error(e) from e
        if not updated:
            await self._raise_transition_refused(message_id)
        return sent_at

    async def set_failed(self, message_id: int) -> None:
        try:
            updated = await self.store.mark_failed(message_id)
        except Exception as e:
            raise MessageUpdateFailedError().with_error(e) from e
        if not updated:
            await self._raise_transition_refused(message_id)

    async def record_attempt(self, message_id: int) -> int:
        try:
            return await self.store.record_attempt(message_id)
        except LookupError as e:
            raise MessageNotFoundError() from e
        except Exception as e:
            raise MessageUpdateFailedError().with_error(e) from e

    # ── Stats ─────────────────────────────────────────────

    async def stats(self) -> dict[str, int]:
        try:
            return await self.store.count_by_status()
        except Exception as e:
            raise MessageListFailedError().with_error(e) from e

    async def _raise_transition_refused(self, message_id: int) -> None:
        """A conditional status update matched no row: missing, or no longer pending."""
        current = await self.get(message_id)
        raise MessageUpdateFailedError(
            f"Message is {current.status.value}, expected pending",
        )

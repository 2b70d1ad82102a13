"""
InMemoryMessageStore — Dict-backed store for development and testing.

Features:
  - Zero dependencies (no database, no Redis)
  - Full interface compatibility with SqlMessageStore
  - Safe under asyncio (single event loop, no awaits while mutating)
  - All data lost on process restart

Best for: local development, unit tests, quick prototyping.
"""
from __future__ import annotations

import itertools
import structlog
from datetime import datetime
from typing import Any, Optional

from database.store_base import BaseMessageStore
from models.schemas import Message, MessageStatus, utcnow

logger = structlog.get_logger()

_EDITABLE_FIELDS = ("phone_number", "content")


class InMemoryMessageStore(BaseMessageStore):
    """
    Same semantics as SqlMessageStore. Returned messages are copies, so
    callers can never mutate stored state by accident.
    """

    def __init__(self):
        self._messages: dict[int, Message] = {}       # id → message
        self._deleted: set[int] = set()
        self._external_ids: dict[str, int] = {}       # provider id → message id
        self._ids = itertools.count(1)
        logger.info("inmemory_store_initialized")

    # ── CRUD ──────────────────────────────────────────────

    async def create(self, phone_number: str, content: str) -> Message:
        now = utcnow()
        msg = Message(
            id=next(self._ids),
            phone_number=phone_number,
            content=content,
            status=MessageStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self._messages[msg.id] = msg
        return msg.model_copy()

    async def get(self, message_id: int) -> Optional[Message]:
        msg = self._live(message_id)
        return msg.model_copy() if msg else None

    async def list_messages(self, limit: int = 50, offset: int = 0) -> list[Message]:
        live = [m for mid, m in self._messages.items() if mid not in self._deleted]
        live.sort(key=lambda m: (m.created_at, m.id), reverse=True)
        return [m.model_copy() for m in live[offset:offset + limit]]

    async def list_sent(self, limit: int = 50, offset: int = 0) -> list[Message]:
        sent = [
            m for mid, m in self._messages.items()
            if mid not in self._deleted and m.status == MessageStatus.SENT
        ]
        sent.sort(key=lambda m: (m.sent_at, m.id), reverse=True)
        return [m.model_copy() for m in sent[offset:offset + limit]]

    async def update(self, message_id: int, **fields: Any) -> Optional[Message]:
        msg = self._live(message_id)
        if msg is None:
            return None
        values = {k: v for k, v in fields.items() if k in _EDITABLE_FIELDS}
        updated = msg.model_copy(update={**values, "updated_at": utcnow()})
        self._messages[message_id] = updated
        return updated.model_copy()

    async def delete(self, message_id: int) -> bool:
        if self._live(message_id) is None:
            return False
        self._deleted.add(message_id)
        return True

    # ── Send queue ────────────────────────────────────────

    async def get_pending(self, limit: int) -> list[Message]:
        pending = [
            m for mid, m in self._messages.items()
            if mid not in self._deleted and m.status == MessageStatus.PENDING
        ]
        pending.sort(key=lambda m: (m.created_at, m.id))
        return [m.model_copy() for m in pending[:limit]]

    async def mark_sent(self, message_id: int, external_id: str, sent_at: datetime) -> bool:
        msg = self._live(message_id)
        if msg is None or msg.status != MessageStatus.PENDING:
            return False
        owner = self._external_ids.get(external_id)
        if owner is not None and owner != message_id:
            raise ValueError(f"external id {external_id!r} already belongs to message {owner}")
        self._messages[message_id] = msg.model_copy(update={
            "status": MessageStatus.SENT,
            "message_id": external_id,
            "sent_at": sent_at,
            "updated_at": utcnow(),
        })
        self._external_ids[external_id] = message_id
        return True

    async def mark_failed(self, message_id: int) -> bool:
        msg = self._live(message_id)
        if msg is None or msg.status != MessageStatus.PENDING:
            return False
        self._messages[message_id] = msg.model_copy(update={
            "status": MessageStatus.FAILED,
            "updated_at": utcnow(),
        })
        return True

    async def record_attempt(self, message_id: int) -> int:
        msg = self._messages.get(message_id)
        if msg is None:
            raise LookupError(f"message {message_id} not found")
        attempts = msg.attempts + 1
        self._messages[message_id] = msg.model_copy(update={
            "attempts": attempts,
            "updated_at": utcnow(),
        })
        return attempts

    # ── Stats ─────────────────────────────────────────────

    async def count_by_status(self) -> dict[str, int]:
        counts = {s.value: 0 for s in MessageStatus}
        for mid, msg in self._messages.items():
            if mid not in self._deleted:
                counts[msg.status.value] += 1
        return counts

    # ── Helpers ───────────────────────────────────────────

    def _live(self, message_id: int) -> Optional[Message]:
        if message_id in self._deleted:
            return None
        return self._messages.get(message_id)

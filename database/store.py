"""
SqlMessageStore — Portable SQL queries for PostgreSQL, MySQL, SQLite.

Every query excludes soft-deleted rows. Status transitions are written as
conditional UPDATEs (WHERE status = 'pending') so a message that is already
sent is never overwritten by a late duplicate dispatch.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import MessageRow
from database.session import get_session
from database.store_base import BaseMessageStore
from models.schemas import Message, MessageStatus

_EDITABLE_FIELDS = ("phone_number", "content")


class SqlMessageStore(BaseMessageStore):
    """
    Persistent message store backed by any SQLAlchemy-supported database.
    Works with PostgreSQL, MySQL 8+, and SQLite.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        # None → the global engine from database.session
        self._session_factory = session_factory

    def _session(self):
        return get_session(self._session_factory)

    # ── CRUD ───────────────────────────────────────────────

    async def create(self, phone_number: str, content: str) -> Message:
        async with self._session() as db:
            row = MessageRow(
                phone_number=phone_number,
                content=content,
                status=MessageStatus.PENDING.value,
            )
            db.add(row)
            await db.flush()
            await db.refresh(row)
            return self._row_to_message(row)

    async def get(self, message_id: int) -> Optional[Message]:
        async with self._session() as db:
            row = await self._get_live_row(db, message_id)
            return self._row_to_message(row) if row else None

    async def list_messages(self, limit: int = 50, offset: int = 0) -> list[Message]:
        async with self._session() as db:
            stmt = (
                select(MessageRow)
                .where(MessageRow.deleted_at.is_(None))
                .order_by(MessageRow.created_at.desc(), MessageRow.id.desc())
                .limit(limit)
                .offset(offset)
            )
            result = await db.execute(stmt)
            return [self._row_to_message(r) for r in result.scalars().all()]

    async def list_sent(self, limit: int = 50, offset: int = 0) -> list[Message]:
        async with self._session() as db:
            stmt = (
                select(MessageRow)
                .where(
                    MessageRow.status == MessageStatus.SENT.value,
                    MessageRow.deleted_at.is_(None),
                )
                .order_by(MessageRow.sent_at.desc(), MessageRow.id.desc())
                .limit(limit)
                .offset(offset)
            )
            result = await db.execute(stmt)
            return [self._row_to_message(r) for r in result.scalars().all()]

    async def update(self, message_id: int, **fields: Any) -> Optional[Message]:
        values = {k: v for k, v in fields.items() if k in _EDITABLE_FIELDS}
        async with self._session() as db:
            row = await self._get_live_row(db, message_id)
            if row is None:
                return None
            for key, value in values.items():
                setattr(row, key, value)
            row.updated_at = datetime.now(timezone.utc)
            await db.flush()
            return self._row_to_message(row)

    async def delete(self, message_id: int) -> bool:
        async with self._session() as db:
            stmt = (
                update(MessageRow)
                .where(MessageRow.id == message_id, MessageRow.deleted_at.is_(None))
                .values(deleted_at=datetime.now(timezone.utc))
            )
            result = await db.execute(stmt)
            return result.rowcount > 0

    # ── Send queue ─────────────────────────────────────────

    async def get_pending(self, limit: int) -> list[Message]:
        async with self._session() as db:
            stmt = (
                select(MessageRow)
                .where(
                    MessageRow.status == MessageStatus.PENDING.value,
                    MessageRow.deleted_at.is_(None),
                )
                .order_by(MessageRow.created_at.asc(), MessageRow.id.asc())
                .limit(limit)
            )
            result = await db.execute(stmt)
            return [self._row_to_message(r) for r in result.scalars().all()]

    async def mark_sent(self, message_id: int, external_id: str, sent_at: datetime) -> bool:
        return await self._transition(message_id, {
            "status": MessageStatus.SENT.value,
            "message_id": external_id,
            "sent_at": sent_at,
        })

    async def mark_failed(self, message_id: int) -> bool:
        return await self._transition(message_id, {"status": MessageStatus.FAILED.value})

    async def record_attempt(self, message_id: int) -> int:
        async with self._session() as db:
            await db.execute(
                update(MessageRow)
                .where(MessageRow.id == message_id)
                .values(attempts=MessageRow.attempts + 1,
                        updated_at=datetime.now(timezone.utc))
            )
            result = await db.execute(
                select(MessageRow.attempts).where(MessageRow.id == message_id)
            )
            attempts = result.scalar_one_or_none()
            if attempts is None:
                raise LookupError(f"message {message_id} not found")
            return attempts

    # ── Stats ──────────────────────────────────────────────

    async def count_by_status(self) -> dict[str, int]:
        async with self._session() as db:
            stmt = (
                select(MessageRow.status, func.count())
                .where(MessageRow.deleted_at.is_(None))
                .group_by(MessageRow.status)
            )
            result = await db.execute(stmt)
            counts = {s.value: 0 for s in MessageStatus}
            counts.update({status: count for status, count in result.all()})
            return counts

    # ── Helpers ────────────────────────────────────────────

    async def _transition(self, row_id: int, values: dict[str, Any]) -> bool:
        """Apply `values` only while the row is live and pending."""
        async with self._session() as db:
            stmt = (
                update(MessageRow)
                .where(
                    MessageRow.id == row_id,
                    MessageRow.status == MessageStatus.PENDING.value,
                    MessageRow.deleted_at.is_(None),
                )
                .values(**values, updated_at=datetime.now(timezone.utc))
            )
            result = await db.execute(stmt)
            return result.rowcount > 0

    @staticmethod
    async def _get_live_row(db: AsyncSession, message_id: int) -> Optional[MessageRow]:
        row = await db.get(MessageRow, message_id)
        if row is None or row.deleted_at is not None:
            return None
        return row

    @staticmethod
    def _row_to_message(row: MessageRow) -> Message:
        return Message.model_validate(row.to_dict())

"""
Abstract Message Store — Interface for all storage backends.

Implementations:
  - SqlMessageStore      (PostgreSQL / MySQL / SQLite via SQLAlchemy)
  - InMemoryMessageStore (dict-based, single-process, no persistence)

Store methods raise plain exceptions on backend failure; translating them
into application errors is the message service's job.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from models.schemas import Message


class BaseMessageStore(ABC):
    """Interface that all message store backends must implement."""

    # ── CRUD ──────────────────────────────────────────────────

    @abstractmethod
    async def create(self, phone_number: str, content: str) -> Message:
        """Insert a new pending message."""
        ...

    @abstractmethod
    async def get(self, message_id: int) -> Optional[Message]:
        ...

    @abstractmethod
    async def list_messages(self, limit: int = 50, offset: int = 0) -> list[Message]:
        """Newest first."""
        ...

    @abstractmethod
    async def list_sent(self, limit: int = 50, offset: int = 0) -> list[Message]:
        """Sent messages, most recently sent first."""
        ...

    @abstractmethod
    async def update(self, message_id: int, **fields: Any) -> Optional[Message]:
        """Update phone_number / content. Returns None when the row is missing."""
        ...

    @abstractmethod
    async def delete(self, message_id: int) -> bool:
        """Soft delete. Returns False when the row is missing."""
        ...

    # ── Send queue ────────────────────────────────────────────

    @abstractmethod
    async def get_pending(self, limit: int) -> list[Message]:
        """Up to `limit` pending messages, oldest created first."""
        ...

    @abstractmethod
    async def mark_sent(self, message_id: int, external_id: str, sent_at: datetime) -> bool:
        """Transition to sent. Returns False when the row is missing."""
        ...

    @abstractmethod
    async def mark_failed(self, message_id: int) -> bool:
        ...

    @abstractmethod
    async def record_attempt(self, message_id: int) -> int:
        """Increment the failed-attempt counter and return the new value."""
        ...

    # ── Stats ─────────────────────────────────────────────────

    @abstractmethod
    async def count_by_status(self) -> dict[str, int]:
        ...

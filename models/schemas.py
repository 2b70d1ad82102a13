"""
Core data models for the message dispatcher.
These are the universal types shared across all modules.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

E164_PATTERN = r"^\+[1-9]\d{1,14}$"
MAX_CONTENT_LENGTH = 160


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class MessageStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"            # only reachable under the fail / bounded policies


class FailurePolicy(str, Enum):
    """What the sender does with a message whose dispatch failed."""
    RETRY = "retry"              # leave pending, retry every cycle
    FAIL = "fail"                # mark failed on the first failure
    BOUNDED = "bounded"          # retry up to max_attempts, then mark failed


class AggregatePolicy(str, Enum):
    """When a cycle as a whole is reported as failed."""
    ALL = "all"                  # every attempted message failed
    ANY = "any"                  # at least one attempted message failed


# ──────────────────────────────────────────────────────────────
#  Message: a single outbound SMS-style message
# ──────────────────────────────────────────────────────────────

class Message(BaseModel):
    """
    A message waiting for (or done with) delivery.

    message_id and sent_at are set if and only if status is SENT.
    """
    model_config = ConfigDict(from_attributes=True)

    id: int
    phone_number: str
    content: str
    status: MessageStatus = MessageStatus.PENDING
    message_id: Optional[str] = None          # provider-assigned external id
    sent_at: Optional[datetime] = None
    attempts: int = 0                         # failed dispatch attempts
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_pending(self) -> bool:
        return self.status == MessageStatus.PENDING


# ──────────────────────────────────────────────────────────────
#  API payloads
# ──────────────────────────────────────────────────────────────

class CreateMessageRequest(BaseModel):
    phone_number: str = Field(..., pattern=E164_PATTERN, examples=["+905551111111"])
    content: str = Field(..., min_length=1, max_length=MAX_CONTENT_LENGTH, examples=["Hello World"])


class UpdateMessageRequest(BaseModel):
    phone_number: Optional[str] = Field(None, pattern=E164_PATTERN)
    content: Optional[str] = Field(None, min_length=1, max_length=MAX_CONTENT_LENGTH)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class MessageResponse(BaseModel):
    id: int
    phone_number: str
    content: str
    status: MessageStatus
    message_id: Optional[str] = None
    sent_at: Optional[datetime] = None
    attempts: int = 0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_message(cls, message: Message) -> MessageResponse:
        return cls(**message.model_dump())


# ──────────────────────────────────────────────────────────────
#  Dispatch results (ephemeral, never persisted)
# ──────────────────────────────────────────────────────────────

@dataclass
class DispatchOutcome:
    """Result of attempting one message."""
    message_id: int
    success: bool
    external_id: str = ""
    error: str = ""


@dataclass
class CycleResult:
    """Result of one full send cycle."""
    fetched: int = 0
    outcomes: list[DispatchOutcome] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    def to_dict(self) -> dict[str, int]:
        return {
            "fetched": self.fetched,
            "attempted": self.attempted,
            "sent": self.sent,
            "failed": self.failed,
        }

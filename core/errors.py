"""
Application errors — structured error hierarchy shared by every layer.

Each error carries:
  - code:        stable machine-readable identifier (MESSAGE_NOT_FOUND, ...)
  - message:     human-readable description
  - status_code: HTTP status used by the API error handler
  - cause:       optional underlying exception (see with_error)

    raise MessageNotFoundError()
    raise MessageListFailedError().with_error(exc)
"""
from __future__ import annotations

from typing import Optional


class AppError(Exception):
    """Base exception for all structured application errors."""

    code: str = "INTERNAL_ERROR"
    message: str = "Internal error"
    status_code: int = 500

    def __init__(
        self,
        message: str = "",
        code: str = "",
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message or type(self).message
        self.code = code or type(self).code
        self.status_code = status_code if status_code is not None else type(self).status_code
        self.cause = cause
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.cause is not None:
            return f"[{self.code}] {self.message}: {self.cause}"
        return f"[{self.code}] {self.message}"

    def with_error(self, cause: BaseException) -> AppError:
        """Return a copy of this error wrapping an underlying cause."""
        err = type(self)(
            message=self.message,
            code=self.code,
            status_code=self.status_code,
            cause=cause,
        )
        err.__cause__ = cause
        return err

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class ConfigError(AppError):
    code = "CONFIG_INVALID"
    message = "Invalid configuration"


# ──────────────────────────────────────────────────────────────
#  Application lifecycle
# ──────────────────────────────────────────────────────────────

class SchedulerInitFailedError(AppError):
    code = "SCHEDULER_INIT_FAILED"
    message = "Failed to initialize message sender job"


# ──────────────────────────────────────────────────────────────
#  Messages
# ──────────────────────────────────────────────────────────────

class MessageNotFoundError(AppError):
    code = "MESSAGE_NOT_FOUND"
    message = "Message not found"
    status_code = 404


class MessageCreateFailedError(AppError):
    code = "MESSAGE_CREATE_FAILED"
    message = "Failed to create message"


class MessageUpdateFailedError(AppError):
    code = "MESSAGE_UPDATE_FAILED"
    message = "Failed to update message"


class MessageDeleteFailedError(AppError):
    code = "MESSAGE_DELETE_FAILED"
    message = "Failed to delete message"


class MessageListFailedError(AppError):
    code = "MESSAGE_LIST_FAILED"
    message = "Failed to list messages"


class MessageNotEditableError(AppError):
    code = "MESSAGE_NOT_EDITABLE"
    message = "Only pending messages can be edited"
    status_code = 409


# ──────────────────────────────────────────────────────────────
#  Message sender
# ──────────────────────────────────────────────────────────────

class MessageSendFailedError(AppError):
    code = "MESSAGE_SEND_FAILED"
    message = "Failed to send message"

    # CycleResult of the failed cycle, attached by the sender
    result = None


class WebhookCallFailedError(AppError):
    code = "WEBHOOK_CALL_FAILED"
    message = "Webhook call failed"
    status_code = 502


class MarkSentFailedError(AppError):
    code = "MARK_SENT_FAILED"
    message = "Failed to mark message as sent"


class MarkFailedFailedError(AppError):
    code = "MARK_FAILED_FAILED"
    message = "Failed to mark message as failed"

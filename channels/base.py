"""
Message transport — interface and error hierarchy for outbound delivery.

Provides:
- ChannelError and its webhook-specific subclasses
- SendMessageRequest / SendMessageResponse: the transport payloads
- MessageTransport: abstract base every delivery backend implements
"""
from __future__ import annotations

import abc

from pydantic import BaseModel, ConfigDict, Field


# ══════════════════════════════════════════════════════════════
#  ERRORS
# ══════════════════════════════════════════════════════════════

class ChannelError(Exception):
    """Base exception for all transport operations."""

    code = "CHANNEL_ERROR"

    def __init__(self, message: str, retryable: bool = False):
        self.retryable = retryable
        super().__init__(message)


class InvalidPhoneNumberError(ChannelError):
    code = "INVALID_PHONE_NUMBER"

    def __init__(self, message: str = "Recipient phone number is empty"):
        super().__init__(message)


class EmptyContentError(ChannelError):
    code = "EMPTY_CONTENT"

    def __init__(self, message: str = "Message content is empty"):
        super().__init__(message)


class WebhookError(ChannelError):
    """Base for failures talking to the webhook endpoint."""

    code = "WEBHOOK_ERROR"

    def __init__(self, message: str, status_code: int = 0, retryable: bool = False):
        self.status_code = status_code
        super().__init__(message, retryable=retryable)


class WebhookConnectionError(WebhookError):
    code = "WEBHOOK_CONNECTION_FAILED"

    def __init__(self, message: str):
        super().__init__(message, retryable=True)


class WebhookUnauthorizedError(WebhookError):
    code = "WEBHOOK_UNAUTHORIZED"

    def __init__(self, message: str = "Webhook rejected the auth key"):
        super().__init__(message, status_code=401)


class WebhookServerError(WebhookError):
    code = "WEBHOOK_SERVER_ERROR"

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message, status_code=status_code, retryable=True)


class WebhookInvalidRequestError(WebhookError):
    code = "WEBHOOK_INVALID_REQUEST"

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message, status_code=status_code)


class WebhookParsingError(WebhookError):
    code = "WEBHOOK_PARSING_FAILED"

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message, status_code=status_code)


# ══════════════════════════════════════════════════════════════
#  PAYLOADS
# ══════════════════════════════════════════════════════════════

class SendMessageRequest(BaseModel):
    to: str
    content: str


class SendMessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    message_id: str = Field(..., alias="messageId", min_length=1)


# ══════════════════════════════════════════════════════════════
#  TRANSPORT INTERFACE
# ══════════════════════════════════════════════════════════════

class MessageTransport(abc.ABC):
    """Delivers a single message to the outside world."""

    name: str = "transport"

    @abc.abstractmethod
    async def send_message(self, request: SendMessageRequest) -> SendMessageResponse:
        """Deliver one message. Raises ChannelError on failure."""
        ...

    async def close(self) -> None:
        pass

"""Outbound message transports."""
from channels.base import (
    ChannelError,
    EmptyContentError,
    InvalidPhoneNumberError,
    MessageTransport,
    SendMessageRequest,
    SendMessageResponse,
    WebhookConnectionError,
    WebhookError,
    WebhookInvalidRequestError,
    WebhookParsingError,
    WebhookServerError,
    WebhookUnauthorizedError,
)
from channels.webhook import MockWebhookClient, WebhookClient, create_webhook_client

__all__ = [
    "ChannelError", "EmptyContentError", "InvalidPhoneNumberError",
    "MessageTransport", "SendMessageRequest", "SendMessageResponse",
    "WebhookError", "WebhookConnectionError", "WebhookInvalidRequestError",
    "WebhookParsingError", "WebhookServerError", "WebhookUnauthorizedError",
    "WebhookClient", "MockWebhookClient", "create_webhook_client",
]

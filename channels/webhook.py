"""
Webhook transport — delivers messages by POSTing them to an HTTP endpoint.

Request:
    POST <url>
    Content-Type: application/json
    x-ins-auth-key: <auth_key>
    {"to": "+905551111111", "content": "Hello"}

Accepted response (any 2xx):
    {"message": "Accepted", "messageId": "67f2f8a8-..."}

Status mapping:
    401   → WebhookUnauthorizedError
    5xx   → WebhookServerError          (retried)
    other → WebhookInvalidRequestError
    network failure → WebhookConnectionError (retried)
"""
from __future__ import annotations

import uuid
import structlog
from typing import Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential,
)

from channels.base import (
    ChannelError, MessageTransport, SendMessageRequest, SendMessageResponse,
    EmptyContentError, InvalidPhoneNumberError,
    WebhookConnectionError, WebhookInvalidRequestError, WebhookParsingError,
    WebhookServerError, WebhookUnauthorizedError,
)
from config.settings import WebhookConfig

logger = structlog.get_logger()

AUTH_HEADER = "x-ins-auth-key"


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ChannelError) and exc.retryable


class WebhookClient(MessageTransport):
    """httpx-based webhook client with tenacity retries on transient failures."""

    name = "webhook"

    def __init__(
        self,
        url: str,
        auth_key: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.auth_key = auth_key
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_seconds = backoff_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={
                    "Content-Type": "application/json",
                    AUTH_HEADER: self.auth_key,
                },
                transport=self._transport,
            )
        return self._client

    async def send_message(self, request: SendMessageRequest) -> SendMessageResponse:
        if not request.to:
            raise InvalidPhoneNumberError()
        if not request.content:
            raise EmptyContentError()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=10),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._post(request)

    async def _post(self, request: SendMessageRequest) -> SendMessageResponse:
        client = await self._get_client()
        try:
            resp = await client.post(self.url, json=request.model_dump())
        except httpx.HTTPError as e:
            logger.warning("webhook_connection_failed", url=self.url, error=str(e))
            raise WebhookConnectionError(f"Webhook request failed: {e}") from e

        if resp.status_code == 401:
            raise WebhookUnauthorizedError()
        if resp.status_code >= 500:
            logger.warning("webhook_server_error", status=resp.status_code, body=resp.text[:500])
            raise WebhookServerError(
                f"Webhook returned {resp.status_code}", status_code=resp.status_code,
            )
        if not resp.is_success:
            logger.error("webhook_rejected", status=resp.status_code, body=resp.text[:500])
            raise WebhookInvalidRequestError(
                f"Webhook returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            return SendMessageResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise WebhookParsingError(
                f"Unexpected webhook response: {resp.text[:200]}",
                status_code=resp.status_code,
            ) from e

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


class MockWebhookClient(MessageTransport):
    """Accepts every message and hands back a random id. For local development."""

    name = "mock"

    def __init__(self):
        self.sent: list[SendMessageRequest] = []

    async def send_message(self, request: SendMessageRequest) -> SendMessageResponse:
        if not request.to:
            raise InvalidPhoneNumberError()
        if not request.content:
            raise EmptyContentError()
        self.sent.append(request)
        message_id = str(uuid.uuid4())
        logger.info("mock_webhook_accepted", to=request.to, message_id=message_id)
        return SendMessageResponse(message="Accepted", message_id=message_id)


def create_webhook_client(config: WebhookConfig) -> MessageTransport:
    """Factory: build the configured transport ("http" or "mock")."""
    if config.backend == "mock":
        logger.info("transport_created", backend="mock")
        return MockWebhookClient()
    logger.info("transport_created", backend="http", url=config.url)
    return WebhookClient(
        url=config.url,
        auth_key=config.auth_key,
        timeout=config.timeout_seconds,
        max_retries=config.max_retries,
    )

"""Shared test fixtures for the message dispatcher."""
import pytest
import pytest_asyncio

from channels.base import (
    MessageTransport, SendMessageRequest, SendMessageResponse, WebhookServerError,
)
from config.settings import (
    CacheConfig, DatabaseConfig, SenderConfig, Settings, WebhookConfig, reset_settings,
)
from database.session import create_engine_for_url, init_db, make_session_factory
from database.store import SqlMessageStore
from database.store_memory import InMemoryMessageStore
from services.message_service import MessageService


class FakeTransport(MessageTransport):
    """
    Records every request. Recipients listed in `failing` get a server error;
    everyone else is accepted with ids ext-1, ext-2, ...
    """

    name = "fake"

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.requests: list[SendMessageRequest] = []
        self.closed = False

    async def send_message(self, request: SendMessageRequest) -> SendMessageResponse:
        self.requests.append(request)
        if request.to in self.failing:
            raise WebhookServerError("Webhook returned 503", status_code=503)
        return SendMessageResponse(message="Accepted", message_id=f"ext-{len(self.requests)}")

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _reset_settings():
    yield
    reset_settings()


@pytest.fixture
def store() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest_asyncio.fixture
async def sql_store(tmp_path) -> SqlMessageStore:
    """SqlMessageStore on a throwaway SQLite file."""
    engine = create_engine_for_url(f"sqlite:///{tmp_path / 'messages.db'}")
    await init_db(engine)
    yield SqlMessageStore(session_factory=make_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def message_service(store) -> MessageService:
    return MessageService(store)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def settings() -> Settings:
    """Memory store + mock webhook, sender not auto-started."""
    return Settings(
        database=DatabaseConfig(store_backend="memory"),
        cache=CacheConfig(enabled=False),
        webhook=WebhookConfig(backend="mock"),
        sender=SenderConfig(interval_seconds=0.05, batch_size=2, auto_start=False,
                            stop_timeout_seconds=1.0),
    ).validate()


@pytest.fixture
def make_transport():
    """FakeTransport factory: make_transport(failing=["+905550000000"])."""
    return FakeTransport

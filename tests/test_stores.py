"""
Tests for message store backends.

Covers:
  - InMemoryMessageStore
  - SqlMessageStore (via SQLite for test portability)
  - Store factory

Both backends run the same contract tests.
"""
import os
import shutil
import tempfile
import pytest
import pytest_asyncio
from datetime import datetime, timezone

from config.settings import DatabaseConfig
from database.session import _to_async_url, create_engine_for_url, init_db, make_session_factory
from database.store import SqlMessageStore
from database.store_factory import create_store
from database.store_memory import InMemoryMessageStore
from models.schemas import MessageStatus

SENT_AT = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(params=["memory", "sql"])
async def any_store(request):
    if request.param == "memory":
        yield InMemoryMessageStore()
        return

    tmp = tempfile.mkdtemp()
    engine = create_engine_for_url(f"sqlite:///{os.path.join(tmp, 'test.db')}")
    await init_db(engine)
    yield SqlMessageStore(session_factory=make_session_factory(engine))
    await engine.dispose()
    shutil.rmtree(tmp, ignore_errors=True)


# ──────────────────────────────────────────────────────────────
#  Store contract (both backends)
# ──────────────────────────────────────────────────────────────

class TestStoreContract:
    @pytest.mark.asyncio
    async def test_create_and_get(self, any_store):
        msg = await any_store.create("+905551111111", "Hello")
        assert msg.id > 0
        assert msg.status == MessageStatus.PENDING
        assert msg.message_id is None
        assert msg.sent_at is None
        assert msg.attempts == 0

        fetched = await any_store.get(msg.id)
        assert fetched.phone_number == "+905551111111"
        assert fetched.content == "Hello"

    @pytest.mark.asyncio
    async def test_get_missing(self, any_store):
        assert await any_store.get(9999) is None

    @pytest.mark.asyncio
    async def test_get_pending_oldest_first_with_limit(self, any_store):
        ids = [(await any_store.create(f"+90555000000{i}", f"m{i}")).id for i in range(4)]
        pending = await any_store.get_pending(2)
        assert [m.id for m in pending] == ids[:2]

    @pytest.mark.asyncio
    async def test_list_newest_first_with_offset(self, any_store):
        ids = [(await any_store.create(f"+90555000000{i}", f"m{i}")).id for i in range(3)]
        listed = await any_store.list_messages(limit=2, offset=0)
        assert [m.id for m in listed] == [ids[2], ids[1]]
        rest = await any_store.list_messages(limit=2, offset=2)
        assert [m.id for m in rest] == [ids[0]]

    @pytest.mark.asyncio
    async def test_mark_sent(self, any_store):
        msg = await any_store.create("+905551111111", "Hello")
        assert await any_store.mark_sent(msg.id, "ext-1", SENT_AT) is True

        stored = await any_store.get(msg.id)
        assert stored.status == MessageStatus.SENT
        assert stored.message_id == "ext-1"
        assert stored.sent_at.replace(tzinfo=timezone.utc) == SENT_AT
        assert await any_store.get_pending(10) == []

    @pytest.mark.asyncio
    async def test_mark_sent_is_not_repeatable(self, any_store):
        msg = await any_store.create("+905551111111", "Hello")
        await any_store.mark_sent(msg.id, "ext-1", SENT_AT)
        assert await any_store.mark_sent(msg.id, "ext-2", SENT_AT) is False
        assert (await any_store.get(msg.id)).message_id == "ext-1"

    @pytest.mark.asyncio
    async def test_mark_sent_missing(self, any_store):
        assert await any_store.mark_sent(404, "ext-1", SENT_AT) is False

    @pytest.mark.asyncio
    async def test_mark_failed(self, any_store):
        msg = await any_store.create("+905551111111", "Hello")
        assert await any_store.mark_failed(msg.id) is True
        stored = await any_store.get(msg.id)
        assert stored.status == MessageStatus.FAILED
        assert stored.message_id is None
        assert await any_store.get_pending(10) == []

    @pytest.mark.asyncio
    async def test_sent_message_cannot_be_failed(self, any_store):
        msg = await any_store.create("+905551111111", "Hello")
        await any_store.mark_sent(msg.id, "ext-1", SENT_AT)
        assert await any_store.mark_failed(msg.id) is False
        assert (await any_store.get(msg.id)).status == MessageStatus.SENT

    @pytest.mark.asyncio
    async def test_record_attempt_increments(self, any_store):
        msg = await any_store.create("+905551111111", "Hello")
        assert await any_store.record_attempt(msg.id) == 1
        assert await any_store.record_attempt(msg.id) == 2
        assert (await any_store.get(msg.id)).attempts == 2

    @pytest.mark.asyncio
    async def test_record_attempt_missing(self, any_store):
        with pytest.raises(LookupError):
            await any_store.record_attempt(404)

    @pytest.mark.asyncio
    async def test_update_editable_fields_only(self, any_store):
        msg = await any_store.create("+905551111111", "Hello")
        updated = await any_store.update(msg.id, content="Changed", status="sent")
        assert updated.content == "Changed"
        assert updated.status == MessageStatus.PENDING

    @pytest.mark.asyncio
    async def test_update_missing(self, any_store):
        assert await any_store.update(404, content="x") is None

    @pytest.mark.asyncio
    async def test_soft_delete_hides_message(self, any_store):
        msg = await any_store.create("+905551111111", "Hello")
        assert await any_store.delete(msg.id) is True
        assert await any_store.get(msg.id) is None
        assert await any_store.get_pending(10) == []
        assert await any_store.list_messages() == []
        assert await any_store.delete(msg.id) is False

    @pytest.mark.asyncio
    async def test_count_by_status(self, any_store):
        a = await any_store.create("+905551111111", "a")
        b = await any_store.create("+905552222222", "b")
        await any_store.create("+905553333333", "c")
        await any_store.mark_sent(a.id, "ext-a", SENT_AT)
        await any_store.mark_failed(b.id)

        assert await any_store.count_by_status() == {"pending": 1, "sent": 1, "failed": 1}

    @pytest.mark.asyncio
    async def test_list_sent_only_sent_most_recent_first(self, any_store):
        a = await any_store.create("+905551111111", "a")
        b = await any_store.create("+905552222222", "b")
        c = await any_store.create("+905553333333", "c")
        await any_store.create("+905554444444", "still pending")
        await any_store.mark_sent(a.id, "ext-a", SENT_AT)
        await any_store.mark_sent(b.id, "ext-b", SENT_AT.replace(hour=11))
        await any_store.mark_failed(c.id)

        sent = await any_store.list_sent(limit=10)
        assert [m.message_id for m in sent] == ["ext-b", "ext-a"]
        assert all(m.status == MessageStatus.SENT for m in sent)

    @pytest.mark.asyncio
    async def test_list_sent_pagination_and_soft_delete(self, any_store):
        ids = []
        for i in range(3):
            msg = await any_store.create(f"+90555000000{i}", f"m{i}")
            await any_store.mark_sent(msg.id, f"ext-{i}", SENT_AT.replace(minute=i))
            ids.append(msg.id)

        assert [m.id for m in await any_store.list_sent(limit=2, offset=0)] == [ids[2], ids[1]]
        assert [m.id for m in await any_store.list_sent(limit=2, offset=2)] == [ids[0]]
        assert await any_store.list_sent(limit=10, offset=10) == []

        await any_store.delete(ids[2])
        assert [m.id for m in await any_store.list_sent(limit=10)] == [ids[1], ids[0]]


# ──────────────────────────────────────────────────────────────
#  In-memory specifics
# ──────────────────────────────────────────────────────────────

class TestInMemoryMessageStore:
    @pytest.mark.asyncio
    async def test_returned_messages_are_copies(self):
        store = InMemoryMessageStore()
        msg = await store.create("+905551111111", "Hello")
        msg.content = "tampered"
        assert (await store.get(msg.id)).content == "Hello"

    @pytest.mark.asyncio
    async def test_external_id_is_unique(self):
        store = InMemoryMessageStore()
        a = await store.create("+905551111111", "a")
        b = await store.create("+905552222222", "b")
        await store.mark_sent(a.id, "dup", SENT_AT)
        with pytest.raises(ValueError):
            await store.mark_sent(b.id, "dup", SENT_AT)


# ──────────────────────────────────────────────────────────────
#  Session helpers and factory
# ──────────────────────────────────────────────────────────────

class TestAsyncUrl:
    def test_sqlite_url(self):
        assert _to_async_url("sqlite:///./test.db") == "sqlite+aiosqlite:///./test.db"

    def test_postgres_url(self):
        assert _to_async_url("postgres://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
        assert _to_async_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"

    def test_mysql_url(self):
        assert _to_async_url("mysql://u:p@h/db") == "mysql+aiomysql://u:p@h/db"

    def test_async_url_untouched(self):
        assert _to_async_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"


class TestStoreFactory:
    def test_memory_backend(self):
        store = create_store(DatabaseConfig(store_backend="memory"))
        assert isinstance(store, InMemoryMessageStore)

    def test_sql_backend(self):
        store = create_store(DatabaseConfig(store_backend="sql"))
        assert isinstance(store, SqlMessageStore)

    def test_defaults_to_memory(self):
        assert isinstance(create_store(), InMemoryMessageStore)

    def test_each_call_builds_a_new_store(self):
        config = DatabaseConfig(store_backend="memory")
        assert create_store(config) is not create_store(config)

"""
API tests — FastAPI TestClient against an in-memory container.

Covers the response envelope, message CRUD, validation errors and the
sender control endpoints (including 409 on lifecycle conflicts).
"""
import asyncio
import pytest
from datetime import datetime, timezone
from fastapi.testclient import TestClient

from api.main import create_app
from core.container import Container
from database.store_memory import InMemoryMessageStore

SENT_AT = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def container(settings, transport):
    return Container(settings, store=InMemoryMessageStore(), transport=transport)


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as c:
        yield c


def _create(client, phone="+905551111111", content="Hello World"):
    resp = client.post("/api/v1/messages", json={"phone_number": phone, "content": content})
    assert resp.status_code == 201
    return resp.json()["data"]


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["status"] == "healthy"
        assert body["data"]["sender_running"] is False
        assert body["data"]["uptime_seconds"] >= 0


class TestMessages:
    def test_create(self, client):
        data = _create(client)
        assert data["id"] > 0
        assert data["status"] == "pending"
        assert data["message_id"] is None

    def test_get(self, client):
        created = _create(client)
        resp = client.get(f"/api/v1/messages/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["data"]["content"] == "Hello World"

    def test_get_missing_is_404_envelope(self, client):
        resp = client.get("/api/v1/messages/999")
        assert resp.status_code == 404
        assert resp.json() == {
            "success": False,
            "error": {"code": "MESSAGE_NOT_FOUND", "message": "Message not found"},
        }

    def test_list_newest_first(self, client):
        first = _create(client, content="first")
        second = _create(client, content="second")
        resp = client.get("/api/v1/messages", params={"limit": 10})
        ids = [m["id"] for m in resp.json()["data"]]
        assert ids == [second["id"], first["id"]]

    def test_list_pagination(self, client):
        for i in range(3):
            _create(client, content=f"m{i}")
        resp = client.get("/api/v1/messages", params={"limit": 2, "offset": 2})
        assert len(resp.json()["data"]) == 1

    def test_update(self, client):
        created = _create(client)
        resp = client.patch(f"/api/v1/messages/{created['id']}", json={"content": "Changed"})
        assert resp.status_code == 200
        assert resp.json()["data"]["content"] == "Changed"

    def test_delete(self, client):
        created = _create(client)
        resp = client.delete(f"/api/v1/messages/{created['id']}")
        assert resp.status_code == 200
        assert client.get(f"/api/v1/messages/{created['id']}").status_code == 404

    def test_stats(self, client):
        _create(client)
        resp = client.get("/api/v1/messages/stats")
        assert resp.json()["data"] == {"pending": 1, "sent": 0, "failed": 0}

    def test_list_sent(self, client, container):
        older = _create(client, content="older")
        newer = _create(client, content="newer")
        _create(client, content="still pending")
        asyncio.run(container.store.mark_sent(older["id"], "ext-old", SENT_AT))
        asyncio.run(container.store.mark_sent(newer["id"], "ext-new", SENT_AT.replace(hour=10)))

        resp = client.get("/api/v1/messages/sent")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert [m["id"] for m in data] == [newer["id"], older["id"]]
        assert [m["message_id"] for m in data] == ["ext-new", "ext-old"]

        page = client.get("/api/v1/messages/sent", params={"limit": 1, "offset": 1}).json()["data"]
        assert [m["id"] for m in page] == [older["id"]]

    def test_list_sent_bad_limit_is_400(self, client):
        resp = client.get("/api/v1/messages/sent", params={"limit": 0})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("payload", [
        {"phone_number": "05551111111", "content": "no plus"},
        {"phone_number": "+905551111111", "content": ""},
        {"phone_number": "+905551111111", "content": "x" * 161},
        {"content": "missing phone"},
    ])
    def test_validation_errors(self, client, payload):
        resp = client.post("/api/v1/messages", json=payload)
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["error"]["code"] == "VALIDATION_ERROR"

    def test_content_at_limit_accepted(self, client):
        _create(client, content="x" * 160)


class TestSenderControl:
    def test_status_start_stop(self, client):
        assert client.get("/api/v1/sender/status").json()["data"] == {"running": False}

        resp = client.post("/api/v1/sender/start")
        assert resp.status_code == 200
        assert resp.json()["data"]["message"] == "Message sender started"
        assert client.get("/api/v1/sender/status").json()["data"] == {"running": True}

        resp = client.post("/api/v1/sender/stop")
        assert resp.status_code == 200
        assert client.get("/api/v1/sender/status").json()["data"] == {"running": False}

    def test_double_start_is_409(self, client):
        client.post("/api/v1/sender/start")
        resp = client.post("/api/v1/sender/start")
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "SCHEDULER_ALREADY_RUNNING"
        client.post("/api/v1/sender/stop")

    def test_stop_when_stopped_is_409(self, client):
        resp = client.post("/api/v1/sender/stop")
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "SCHEDULER_NOT_RUNNING"

    def test_started_sender_dispatches(self, client, transport):
        created = _create(client)
        client.post("/api/v1/sender/start")
        client.post("/api/v1/sender/stop")
        msg = client.get(f"/api/v1/messages/{created['id']}").json()["data"]
        assert msg["status"] == "sent"
        assert msg["message_id"] == "ext-1"
        assert len(transport.requests) == 1

    def test_sent_message_not_editable(self, client):
        created = _create(client)
        client.post("/api/v1/sender/start")
        client.post("/api/v1/sender/stop")
        resp = client.patch(f"/api/v1/messages/{created['id']}", json={"content": "late"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "MESSAGE_NOT_EDITABLE"


class TestLifespan:
    def test_auto_start_and_shutdown(self, settings, transport):
        settings.sender.auto_start = True
        container = Container(settings, store=InMemoryMessageStore(), transport=transport)
        with TestClient(create_app(container)) as client:
            assert client.get("/api/v1/sender/status").json()["data"]["running"] is True
        assert container.job.is_running() is False
        assert transport.closed is True

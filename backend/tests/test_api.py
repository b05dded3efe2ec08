"""
API tests over the full application with local storage in a temp directory.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from aivan.config import Settings
from aivan.main import create_app
from aivan.services.session_store import SESSION_KEY

from conftest import FakePipeline


@pytest.fixture
def client(tmp_path):
    config = Settings(
        local_storage_path=str(tmp_path / "data"),
        local_session_path=str(tmp_path / "device" / "local_storage.json"),
        gemini_api_key=None,
        log_file_enabled=False,
        log_console_enabled=False,
    )
    with TestClient(create_app(config)) as test_client:
        test_client.app.state.registry.pipeline = FakePipeline(reply="Bonjour!")
        yield test_client


@pytest.fixture
def signed_in(client):
    response = client.post("/session", json={"email": "dana@example.com", "name": "Dana"})
    assert response.status_code == 201
    return client


class TestHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["app"] == "Aivan"

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["llm_configured"] is False


class TestSession:
    """Device sign-in and sign-out."""

    def test_requires_session(self, client):
        assert client.get("/session").status_code == 401
        assert client.get("/chats").status_code == 401

    def test_sign_in_and_out(self, signed_in):
        assert signed_in.get("/session").json() == {"email": "dana@example.com", "name": "Dana"}

        assert signed_in.delete("/session").status_code == 200
        assert signed_in.get("/session").status_code == 401

    def test_invalid_email(self, client):
        response = client.post("/session", json={"email": "not-an-email", "name": "Dana"})
        assert response.status_code == 422

    def test_requests_refresh_last_active(self, signed_in):
        kv = signed_in.app.state.session_store.store
        token = json.loads(kv.get(SESSION_KEY))
        stale = int((datetime.now(timezone.utc) - timedelta(days=20)).timestamp() * 1000)
        token["lastActive"] = stale
        kv.set(SESSION_KEY, json.dumps(token))

        assert signed_in.get("/chats").status_code == 200

        assert json.loads(kv.get(SESSION_KEY))["lastActive"] > stale


class TestChats:
    """Chat lifecycle over HTTP."""

    def test_send_creates_chat(self, signed_in):
        response = signed_in.post("/chats/messages", json={"text": "Weekend in Lyon"})

        assert response.status_code == 200
        data = response.json()
        assert data["reply"]["text"] == "Bonjour!"
        assert data["chat"]["title"] == "Weekend in Lyon"
        assert data["chat"]["isPinned"] is False
        assert [m["role"] for m in data["chat"]["messages"]] == ["user", "model"]

        chats = signed_in.get("/chats").json()
        assert [c["id"] for c in chats] == [data["chat"]["id"]]

    def test_send_to_existing_chat(self, signed_in):
        chat_id = signed_in.post("/chats").json()["id"]

        response = signed_in.post("/chats/messages", json={"text": "Hi", "chatId": chat_id})

        assert response.json()["chat"]["id"] == chat_id
        assert len(signed_in.get(f"/chats/{chat_id}").json()["messages"]) == 2

    def test_blank_message_rejected(self, signed_in):
        assert signed_in.post("/chats/messages", json={"text": "  "}).status_code == 400

    def test_unknown_chat(self, signed_in):
        assert signed_in.get("/chats/missing").status_code == 404
        assert signed_in.post("/chats/missing/trash").status_code == 404
        response = signed_in.post("/chats/messages", json={"text": "Hi", "chatId": "missing"})
        assert response.status_code == 404

    def test_reply_failure_and_retry(self, signed_in):
        pipeline = signed_in.app.state.registry.pipeline
        pipeline.error = RuntimeError("offline")

        response = signed_in.post("/chats/messages", json={"text": "Hello"})
        assert response.status_code == 503
        assert "Connection error" in response.json()["detail"]

        chat = signed_in.get("/chats").json()[0]
        assert [m["role"] for m in chat["messages"]] == ["user"]

        pipeline.error = None
        response = signed_in.post("/chats/retry", json={"chatId": chat["id"]})
        assert response.status_code == 200
        assert [m["text"] for m in response.json()["chat"]["messages"]] == ["Hello", "Bonjour!"]

        assert signed_in.post("/chats/retry", json={"chatId": chat["id"]}).status_code == 400

    def test_attachment_only_message_is_not_retried(self, signed_in):
        signed_in.app.state.registry.pipeline.error = RuntimeError("offline")
        attachment = {"type": "image", "mimeType": "image/png", "data": "QUJD"}
        response = signed_in.post("/chats/messages", json={"text": "", "attachments": [attachment]})
        assert response.status_code == 503

        chat_id = signed_in.get("/chats").json()[0]["id"]
        response = signed_in.post("/chats/retry", json={"chatId": chat_id})

        assert response.status_code == 400
        assert [m["role"] for m in signed_in.get(f"/chats/{chat_id}").json()["messages"]] == ["user"]

    def test_search(self, signed_in):
        signed_in.post("/chats/messages", json={"text": "Museums in Madrid"})
        signed_in.post("/chats/messages", json={"text": "Beaches in Crete"})

        results = signed_in.get("/chats", params={"q": "Crete"}).json()
        assert [c["title"] for c in results] == ["Beaches in Crete"]

    def test_pin(self, signed_in):
        chat_id = signed_in.post("/chats").json()["id"]

        assert signed_in.post(f"/chats/{chat_id}/pin").json()["isPinned"] is True
        assert signed_in.post(f"/chats/{chat_id}/pin").json()["isPinned"] is False

    def test_trash_restore_and_delete(self, signed_in):
        chat_id = signed_in.post("/chats/messages", json={"text": "Hello"}).json()["chat"]["id"]

        assert signed_in.post(f"/chats/{chat_id}/trash").status_code == 200
        assert signed_in.get("/chats").json() == []
        trash = signed_in.get("/chats/trash").json()
        assert [c["id"] for c in trash] == [chat_id]
        assert trash[0]["deletedAt"]

        assert signed_in.post(f"/chats/{chat_id}/restore").status_code == 200
        assert [c["id"] for c in signed_in.get("/chats").json()] == [chat_id]

        assert signed_in.delete(f"/chats/{chat_id}").status_code == 409
        assert signed_in.delete(f"/chats/{chat_id}", params={"confirm": "true"}).status_code == 200
        assert signed_in.get(f"/chats/{chat_id}").status_code == 404

    def test_empty_trash(self, signed_in):
        for text in ("One", "Two", "Three"):
            chat_id = signed_in.post("/chats/messages", json={"text": text}).json()["chat"]["id"]
            signed_in.post(f"/chats/{chat_id}/trash")

        assert signed_in.post("/chats/trash/empty").status_code == 409
        assert len(signed_in.get("/chats/trash").json()) == 3

        response = signed_in.post("/chats/trash/empty", params={"confirm": "true"})
        assert response.json() == {"deleted": 3}
        assert signed_in.get("/chats/trash").json() == []

    def test_export(self, signed_in):
        signed_in.post("/chats/messages", json={"text": "Hello"})

        data = signed_in.get("/chats/export").json()

        assert data["userEmail"] == "dana@example.com"
        assert data["chats"][0]["title"] == "Hello"


class TestAccount:
    """Account deletion."""

    def test_delete_account(self, signed_in):
        signed_in.post("/chats/messages", json={"text": "Hello"})

        assert signed_in.delete("/account").status_code == 409
        assert signed_in.delete("/account", params={"confirm": "true"}).status_code == 200

        assert signed_in.get("/session").status_code == 401
        signed_in.post("/session", json={"email": "dana@example.com", "name": "Dana"})
        assert signed_in.get("/chats").json() == []


class TestRetentionSweep:
    """Expired trash is removed when a user's chats are first loaded."""

    def test_sweep_is_logged_with_masked_user(self, signed_in):
        deleted_at = (datetime.now(timezone.utc) - timedelta(days=40)).isoformat()
        signed_in.portal.call(
            signed_in.app.state.store.set,
            "users/dana@example.com/chats/old",
            {"id": "old", "title": "Old trip", "date": deleted_at, "deletedAt": deleted_at},
        )

        with patch("aivan.api.deps.logger") as mock_logger:
            assert signed_in.get("/chats/trash").json() == []

        message = mock_logger.info.call_args.args[0]
        fields = mock_logger.info.call_args.kwargs["extra"]["extra_fields"]
        assert message == "Retention sweep removed 1 chats"
        assert "dana@example.com" not in message
        assert fields["user"] == "dana@example.com"


class TestRequestLogging:
    """Request logging middleware."""

    def test_error_reason(self):
        from aivan.middleware.request_logging import error_reason

        assert error_reason(b'{"detail": "Chat x not found"}') == "Chat x not found"
        assert error_reason(b'{"detail": [{"loc": ["body"]}]}') == '[{"loc": ["body"]}]'
        assert error_reason(b"plain failure") == "plain failure"
        assert error_reason(b"") is None

    def test_failed_request_is_logged(self, client):
        with patch("aivan.middleware.request_logging.logger") as mock_logger:
            client.get("/chats")

        level, message = mock_logger.log.call_args.args[:2]
        assert level == logging.WARNING
        assert message.startswith("GET /chats - 401")
        assert "Not signed in" in message

"""Tests for the FastAPI boundary: validation, auth, readiness gate, admin."""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from chatbot_bridge.api.server import create_app
from chatbot_bridge.api.session_manager import SessionState

from conftest import FakeEngine, FakePage

API_KEY = "test-secret"


def _engine(answer="Risposta dal bot") -> FakeEngine:
    return FakeEngine(page_factory=lambda: FakePage(answer=answer))


@pytest.fixture
def client(config):
    config.api_key = API_KEY
    app = create_app(config, engine=_engine())
    with TestClient(app) as client:
        client.headers.update({"Authorization": f"Bearer {API_KEY}"})
        yield client


# ---------------------------------------------------------------------------
# Health / status
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health_after_startup(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "initialized": True, "queueLength": 0}

    def test_health_needs_no_credentials(self, client):
        resp = client.get("/health", headers={"Authorization": ""})
        assert resp.status_code == 200

    def test_health_when_not_ready(self, client):
        client.app.state.service.sessions.state = SessionState.DISCONNECTED

        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["initialized"] is False

    def test_admin_status(self, client):
        resp = client.get("/admin/status")
        assert resp.status_code == 200
        data = resp.json()
        assert data["initialized"] is True
        assert data["browserActive"] is True
        assert data["pageActive"] is True
        assert data["queueLength"] == 0
        assert "requests" in data


# ---------------------------------------------------------------------------
# /chat
# ---------------------------------------------------------------------------


class TestChat:
    def test_answer(self, client):
        resp = client.post("/chat", json={"prompt": "Ciao"})
        assert resp.status_code == 200
        assert resp.json() == {"answer": "Risposta dal bot"}

    @pytest.mark.parametrize(
        "body",
        [{}, {"prompt": ""}, {"prompt": 42}, {"prompt": None}, {"prompt": ["a"]}, ["prompt"]],
    )
    def test_invalid_prompt(self, client, body):
        resp = client.post("/chat", json=body)
        assert resp.status_code == 400

    def test_invalid_json_body(self, client):
        resp = client.post(
            "/chat", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert resp.status_code == 400

    def test_prompt_too_long(self, client):
        resp = client.post("/chat", json={"prompt": "x" * 10001})
        assert resp.status_code == 400
        assert "10000" in resp.json()["detail"]

    def test_prompt_at_limit_accepted(self, client):
        resp = client.post("/chat", json={"prompt": "x" * 10000})
        assert resp.status_code == 200

    def test_not_ready_never_reaches_queue(self, client):
        service = client.app.state.service
        service.sessions.state = SessionState.DISCONNECTED
        service.queue.submit = AsyncMock()

        resp = client.post("/chat", json={"prompt": "hi"})

        assert resp.status_code == 503
        service.queue.submit.assert_not_called()

    def test_automation_failure_is_500(self, client):
        page = client.app.state.service.sessions.current_page()
        page.fail_on = "navigate"

        resp = client.post("/chat", json={"prompt": "hi"})

        assert resp.status_code == 500
        assert "navigate exploded" in resp.json()["detail"]

        # Queue keeps serving after a failure
        page.fail_on = None
        assert client.post("/chat", json={"prompt": "again"}).status_code == 200


class TestAuth:
    def test_missing_credentials(self, client):
        resp = client.post("/chat", json={"prompt": "hi"}, headers={"Authorization": ""})
        assert resp.status_code == 401

    def test_wrong_bearer_token(self, client):
        resp = client.post(
            "/chat", json={"prompt": "hi"}, headers={"Authorization": "Bearer nope"}
        )
        assert resp.status_code == 401

    def test_x_api_key_header(self, client):
        resp = client.post(
            "/chat",
            json={"prompt": "hi"},
            headers={"Authorization": "", "X-API-Key": API_KEY},
        )
        assert resp.status_code == 200

    def test_valid_x_api_key_wins_over_wrong_bearer(self, client):
        resp = client.post(
            "/chat",
            json={"prompt": "hi"},
            headers={"Authorization": "Bearer nope", "X-API-Key": API_KEY},
        )
        assert resp.status_code == 200

    def test_non_bearer_scheme_rejected(self, client):
        resp = client.post(
            "/chat", json={"prompt": "hi"}, headers={"Authorization": f"Basic {API_KEY}"}
        )
        assert resp.status_code == 401
        assert "Schema" in resp.json()["detail"]

    def test_non_bearer_scheme_with_valid_x_api_key(self, client):
        resp = client.post(
            "/chat",
            json={"prompt": "hi"},
            headers={"Authorization": "Basic abc", "X-API-Key": API_KEY},
        )
        assert resp.status_code == 200

    def test_admin_endpoints_require_auth(self, client):
        resp = client.get("/admin/status", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_auth_disabled_without_secret(self, config):
        config.api_key = None
        with TestClient(create_app(config, engine=_engine())) as client:
            resp = client.post("/chat", json={"prompt": "hi"})
        assert resp.status_code == 200


class TestStructuredReplies:
    def _client(self, config, answer):
        config.structured_replies = True
        return TestClient(create_app(config, engine=_engine(answer)))

    def test_json_answer_returned_as_object(self, config):
        with self._client(config, '```json\n{"sentiment": "positive"}\n```') as client:
            resp = client.post("/chat", json={"prompt": "classify"})
        assert resp.status_code == 200
        assert resp.json() == {"sentiment": "positive"}

    def test_malformed_answer_wrapped(self, config):
        with self._client(config, "not json at all") as client:
            resp = client.post("/chat", json={"prompt": "classify"})
        assert resp.status_code == 200
        assert resp.json() == {"response": "not json at all"}


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class TestSaveSession:
    def test_save_session_writes_file(self, client, config):
        page = client.app.state.service.sessions.current_page()
        page.cookie_jar.append({"name": "sid", "value": "1"})
        page.storage["k"] = "v"

        resp = client.post("/admin/save-session")

        assert resp.status_code == 200
        assert resp.json() == {"message": "Session saved successfully"}
        saved = json.loads(config.session_file.read_text(encoding="utf-8"))
        assert saved == {"cookies": [{"name": "sid", "value": "1"}], "localStorage": {"k": "v"}}

    def test_save_session_failure_is_500(self, client):
        page = client.app.state.service.sessions.current_page()
        page.fail_on = "cookies"

        resp = client.post("/admin/save-session")

        assert resp.status_code == 500
        assert "cookies exploded" in resp.json()["detail"]

    def test_save_session_when_not_ready(self, client):
        client.app.state.service.sessions.state = SessionState.DISCONNECTED

        resp = client.post("/admin/save-session")

        assert resp.status_code == 500

    def test_admin_requires_credentials(self, client):
        resp = client.post("/admin/save-session", headers={"Authorization": ""})
        assert resp.status_code == 401

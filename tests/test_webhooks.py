"""
Tests for the HTTP surface: webhooks, discussion endpoints and health.
"""

import hashlib
import hmac
import json
import time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient
from pydantic import SecretStr

from conftest import make_output
from discubot.adapters import NotionAdapter, register_adapter, reset_adapter_registry
from discubot.app import dependencies
from discubot.app.api import discussions
from discubot.app.api.webhooks import common, figma, notion, slack
from discubot.app.api.webhooks.slack import verify_slack_signature
from discubot.app.main import app
from discubot.config import AppSettings, Flow, FlowInput, InMemoryConfigurationService
from discubot.errors import ProcessingError
from discubot.integrations.notion import NotionClient, NotionConfig
from discubot.models import DiscussionStatus, SourceType
from discubot.store import DiscussionRecord, InMemoryDiscussionStore, JobRecord

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"


def sign(body: bytes, timestamp: str, secret: str = SECRET) -> str:
    base = b"v0:" + timestamp.encode() + b":" + body
    return "v0=" + hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()


@pytest.fixture
def client():
    # No context manager: lifespan (service startup) is not needed here
    return TestClient(app)


@pytest.fixture
def queued(monkeypatch):
    """Capture background processing instead of running the processor."""
    mock = AsyncMock()
    for module in (slack, figma, notion):
        monkeypatch.setattr(module, "process_discussion", mock)
    return mock


@pytest.fixture(autouse=True)
def default_adapters():
    reset_adapter_registry()
    yield
    reset_adapter_registry()


# =============================================================================
# Slack
# =============================================================================


class TestSlackSignature:
    """verify_slack_signature."""

    def test_valid(self):
        body = b'{"type":"event_callback"}'
        assert verify_slack_signature(SECRET, "1700000000", body, sign(body, "1700000000"), now=1700000010)

    def test_tampered_body(self):
        signature = sign(b"original", "1700000000")
        assert not verify_slack_signature(SECRET, "1700000000", b"tampered", signature, now=1700000000)

    def test_stale_timestamp(self):
        body = b"{}"
        signature = sign(body, "1700000000")
        assert not verify_slack_signature(SECRET, "1700000000", body, signature, now=1700000000 + 301)

    def test_missing_headers(self):
        assert not verify_slack_signature(SECRET, None, b"{}", "v0=abc")
        assert not verify_slack_signature(SECRET, "not-a-number", b"{}", "v0=abc")


class TestSlackWebhook:
    """POST /api/v1/webhooks/slack."""

    def test_url_verification(self, client, queued):
        response = client.post("/api/v1/webhooks/slack", json={"type": "url_verification", "challenge": "abc"})

        assert response.status_code == 200
        assert response.json() == {"challenge": "abc"}

    def test_event_is_queued(self, client, queued, slack_event):
        response = client.post("/api/v1/webhooks/slack", json=slack_event)

        assert response.json()["status"] == "accepted"
        parsed = queued.await_args.args[0]
        assert parsed.source_thread_id == "C1:100.1"
        assert parsed.team_id == "T1"

    def test_slack_retries_are_ignored(self, client, queued, slack_event):
        response = client.post(
            "/api/v1/webhooks/slack",
            json=slack_event,
            headers={"X-Slack-Retry-Num": "1", "X-Slack-Retry-Reason": "http_timeout"},
        )

        assert response.json()["status"] == "ignored"
        queued.assert_not_awaited()

    def test_irrelevant_event_is_ignored(self, client, queued, slack_event):
        slack_event["event"]["subtype"] = "message_changed"

        response = client.post("/api/v1/webhooks/slack", json=slack_event)

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        queued.assert_not_awaited()

    def test_signature_enforced_when_configured(self, client, queued, slack_event, monkeypatch):
        settings = AppSettings(slack_signing_secret=SecretStr(SECRET))
        monkeypatch.setattr(dependencies, "get_settings", lambda: settings)
        body = json.dumps(slack_event).encode()
        timestamp = str(int(time.time()))

        rejected = client.post(
            "/api/v1/webhooks/slack",
            content=body,
            headers={"X-Slack-Request-Timestamp": timestamp, "X-Slack-Signature": "v0=forged"},
        )
        accepted = client.post(
            "/api/v1/webhooks/slack",
            content=body,
            headers={"X-Slack-Request-Timestamp": timestamp, "X-Slack-Signature": sign(body, timestamp)},
        )

        assert rejected.json() == {"status": "error", "message": "invalid signature"}
        assert accepted.json()["status"] == "accepted"
        assert queued.await_count == 1


# =============================================================================
# Figma
# =============================================================================


class TestFigmaWebhook:
    """POST /api/v1/webhooks/figma."""

    def test_email_is_queued(self, client, queued):
        response = client.post(
            "/api/v1/webhooks/figma",
            data={
                "from": "Bob <comments-ABC123@email.figma.com>",
                "recipient": "acme@inbound.discubot.app",
                "subject": "Bob commented on Landing Page",
                "body-plain": "Banner colours are off",
            },
        )

        assert response.json()["status"] == "accepted"
        parsed = queued.await_args.args[0]
        assert parsed.source_type == SourceType.FIGMA
        assert parsed.team_id == "acme"

    def test_unrelated_email_is_ignored(self, client, queued):
        response = client.post(
            "/api/v1/webhooks/figma",
            data={"from": "someone@example.com", "subject": "Lunch?", "body-plain": "Pizza at noon"},
        )

        assert response.json()["status"] == "ignored"
        queued.assert_not_awaited()


# =============================================================================
# Notion
# =============================================================================


def notion_service() -> InMemoryConfigurationService:
    service = InMemoryConfigurationService()
    service.add_flow(
        Flow(id="flow-n", team_id="W1"),
        inputs=[
            FlowInput(
                id="input-notion",
                flow_id="flow-n",
                source_type=SourceType.NOTION,
                api_token="secret_notion",
                source_metadata={"notion_workspace_id": "W1"},
            )
        ],
        outputs=[make_output("default", is_default=True)],
    )
    return service


def use_comment(text: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": "comment-1",
                "rich_text": [{"type": "text", "plain_text": text}],
                "created_time": "2024-03-01T09:00:00.000Z",
            },
        )

    transport = httpx.MockTransport(handler)
    register_adapter(
        NotionAdapter(
            client_factory=lambda token: NotionClient(
                NotionConfig(api_key=token, max_retries=0),
                transport=transport,
            )
        )
    )


NOTION_EVENT = {
    "type": "comment.created",
    "workspace_id": "W1",
    "data": {
        "id": "comment-1",
        "discussion_id": "disc-1",
        "parent": {"type": "page_id", "page_id": "page-1"},
        "created_by": {"id": "user-1"},
    },
}


class TestNotionWebhook:
    """POST /api/v1/webhooks/notion."""

    @pytest.fixture(autouse=True)
    def configured(self, monkeypatch):
        monkeypatch.setattr(dependencies, "get_config_service", notion_service)

    def test_verification_token(self, client, queued):
        response = client.post("/api/v1/webhooks/notion", json={"verification_token": "tok"})

        assert response.json()["status"] == "accepted"
        queued.assert_not_awaited()

    def test_unknown_workspace(self, client, queued):
        response = client.post("/api/v1/webhooks/notion", json={**NOTION_EVENT, "workspace_id": "W9"})

        assert response.json() == {"status": "ignored", "message": "no configuration for workspace"}

    def test_trigger_keyword_required(self, client, queued):
        use_comment("Looks good to me")

        response = client.post("/api/v1/webhooks/notion", json=NOTION_EVENT)

        assert response.json() == {"status": "ignored", "message": "no trigger keyword"}
        queued.assert_not_awaited()

    def test_triggered_comment_is_queued(self, client, queued):
        use_comment("@Discubot ship the banner")

        response = client.post("/api/v1/webhooks/notion", json=NOTION_EVENT)

        assert response.json()["status"] == "accepted"
        parsed = queued.await_args.args[0]
        assert parsed.source_thread_id == "page-1:disc-1"
        assert parsed.content == "@Discubot ship the banner"


# =============================================================================
# Background processing
# =============================================================================


class TestProcessDiscussion:
    """common.process_discussion never raises."""

    @pytest.fixture
    def parsed(self):
        return SimpleNamespace(discussion_key="T1:C1:100.1")

    @pytest.mark.asyncio
    async def test_duplicate_is_logged(self, parsed, monkeypatch):
        processor = MagicMock()
        processor.process = AsyncMock(return_value=SimpleNamespace(duplicate=True))
        monkeypatch.setattr(dependencies, "get_processor", lambda: processor)

        await common.process_discussion(parsed)

        processor.process.assert_awaited_once_with(parsed)

    @pytest.mark.asyncio
    async def test_failures_are_contained(self, parsed, monkeypatch):
        processor = MagicMock()
        processor.process = AsyncMock(
            side_effect=[
                ProcessingError("Notion unavailable", "creating_outputs", retryable=True),
                RuntimeError("boom"),
            ]
        )
        monkeypatch.setattr(dependencies, "get_processor", lambda: processor)

        await common.process_discussion(parsed)
        await common.process_discussion(parsed)

        assert processor.process.await_count == 2


# =============================================================================
# Discussions and health
# =============================================================================


class TestDiscussionEndpoints:
    """GET /discussions/{id} and POST /discussions/{id}/retry."""

    @pytest.fixture
    def store(self, monkeypatch):
        store = InMemoryDiscussionStore()
        monkeypatch.setattr(dependencies, "get_store", lambda: store)
        return store

    def test_unknown_discussion(self, client, store):
        assert client.get("/api/v1/discussions/missing").status_code == 404
        assert client.post("/api/v1/discussions/missing/retry").status_code == 404

    def test_get_and_retry(self, client, store, monkeypatch):
        record = DiscussionRecord(
            team_id="T1",
            source_type=SourceType.SLACK,
            source_thread_id="C1:100.1",
            status=DiscussionStatus.FAILED,
        )
        store.discussions[record.id] = record
        retry = AsyncMock()
        monkeypatch.setattr(discussions, "_retry_in_background", retry)

        body = client.get(f"/api/v1/discussions/{record.id}").json()
        response = client.post(f"/api/v1/discussions/{record.id}/retry")

        assert body["discussion"]["source_thread_id"] == "C1:100.1"
        assert body["job"] is None
        assert body["tasks"] == []
        assert response.json()["status"] == "accepted"
        retry.assert_awaited_once_with(record.id)

    def test_retry_rejects_completed_and_running(self, client, store, monkeypatch):
        retry = AsyncMock()
        monkeypatch.setattr(discussions, "_retry_in_background", retry)
        job = JobRecord(team_id="T1", discussion_id="d", status="completed")
        store.jobs[job.id] = job

        for status in (DiscussionStatus.COMPLETED, DiscussionStatus.PROCESSING):
            record = DiscussionRecord(
                team_id="T1",
                source_type=SourceType.SLACK,
                source_thread_id=f"C1:{status.value}",
                status=status,
                sync_job_id=job.id,
            )
            store.discussions[record.id] = record

            response = client.post(f"/api/v1/discussions/{record.id}/retry")

            assert response.status_code == 409
            assert status.value in response.json()["detail"]
        retry.assert_not_awaited()

    def test_retry_accepts_partially_completed(self, client, store, monkeypatch):
        retry = AsyncMock()
        monkeypatch.setattr(discussions, "_retry_in_background", retry)
        job = JobRecord(team_id="T1", discussion_id="d", status="partially_completed")
        store.jobs[job.id] = job
        record = DiscussionRecord(
            team_id="T1",
            source_type=SourceType.SLACK,
            source_thread_id="C1:100.1",
            status=DiscussionStatus.COMPLETED,
            sync_job_id=job.id,
        )
        store.discussions[record.id] = record

        response = client.post(f"/api/v1/discussions/{record.id}/retry")

        assert response.status_code == 200
        retry.assert_awaited_once_with(record.id)


class TestHealth:
    """GET /health."""

    def test_reports_sources(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert sorted(body["sources"]) == ["figma", "notion", "slack"]
        assert "hits" in body["analysis_cache"]

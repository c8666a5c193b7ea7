"""
Pytest configuration and fixtures for Discubot tests.
"""

import asyncio
import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

# Add the repository root to path for imports
# This allows `from discubot.pipeline import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from discubot.adapters import ConfigValidation, SourceAdapter  # noqa: E402
from discubot.config import (  # noqa: E402
    Flow,
    FlowInput,
    FlowOutput,
    InMemoryConfigurationService,
    NotionOutputConfig,
)
from discubot.errors import TransientError  # noqa: E402
from discubot.models import (  # noqa: E402
    AIAnalysis,
    AISummary,
    CreatedTask,
    DetectedTask,
    DiscussionThread,
    SourceType,
    ThreadMessage,
)
from discubot.pipeline import NoBackoff, RetryPolicy  # noqa: E402
from discubot.services import DiscussionProcessor  # noqa: E402
from discubot.store import InMemoryDiscussionStore, InMemoryInFlightRegistry  # noqa: E402


# =============================================================================
# Builders
# =============================================================================


def make_output(
    output_id: str,
    *,
    domains: list[str] | None = None,
    is_default: bool = False,
    database_id: str | None = None,
    token: str = "secret_test_token",
    active: bool = True,
) -> FlowOutput:
    return FlowOutput(
        id=output_id,
        flow_id="flow-1",
        name=output_id.title(),
        domain_filter=domains or [],
        is_default=is_default,
        active=active,
        output_config=NotionOutputConfig(
            notion_token=token,
            database_id=database_id or f"db-{output_id}",
        ),
    )


def make_thread(thread_id: str = "C1:100.1", texts: list[str] | None = None) -> DiscussionThread:
    texts = texts or ["Ship the banner redesign"]
    messages = [
        ThreadMessage(
            id=f"{100 + i}.1",
            author_handle=f"U{i + 1}",
            content=text,
            timestamp=datetime.fromtimestamp(100 + i, UTC),
        )
        for i, text in enumerate(texts)
    ]
    return DiscussionThread.from_messages(thread_id, messages)


def make_analysis(*tasks: DetectedTask) -> AIAnalysis:
    return AIAnalysis(
        summary=AISummary(
            summary="The team agreed to ship the banner redesign.",
            key_points=("Ship banner",),
            sentiment="positive",
            confidence=0.9,
        ),
        tasks=tasks,
        confidence=0.85,
        model="test-model",
    )


# =============================================================================
# Fakes
# =============================================================================


class FakeAdapter(SourceAdapter):
    """Adapter returning a fixed thread and recording feedback calls."""

    source_type = SourceType.SLACK

    def __init__(self, thread: DiscussionThread | None = None, fetch_error: Exception | None = None):
        self.thread = thread
        self.fetch_error = fetch_error
        self.fetch_calls: list[str] = []
        self.replies: list[tuple[str, str]] = []
        self.statuses: list[tuple[str, str]] = []

    async def parse_incoming(self, payload, config=None):
        raise NotImplementedError

    async def fetch_thread(self, thread_id, config):
        self.fetch_calls.append(thread_id)
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.thread or make_thread(thread_id)

    async def post_reply(self, thread_id, message, config):
        self.replies.append((thread_id, message))
        return True

    async def update_status(self, thread_id, status, config):
        self.statuses.append((thread_id, status.value))
        return True

    def validate_config(self, config):
        return ConfigValidation(valid=True)

    async def test_connection(self, config):
        return True


class FakeAIService:
    """Stands in for AIAnalysisService."""

    def __init__(self, analysis: AIAnalysis | None = None, error: Exception | None = None):
        self.analysis = analysis or make_analysis(DetectedTask(title="Ship banner", domain="design"))
        self.error = error
        self.calls: list[dict] = []

    async def analyze(self, thread, **kwargs):
        self.calls.append({"thread": thread, **kwargs})
        if self.error is not None:
            raise self.error
        return self.analysis


class FakeTaskCreator:
    """
    Records create_task calls; fails for database ids listed in ``failing``.

    ``gate`` lets a test hold every creation until it is set.
    """

    def __init__(self, failing: set[str] | None = None, gate: asyncio.Event | None = None):
        self.failing = failing or set()
        self.gate = gate
        self.created: list[tuple[str, str]] = []

    async def create_task(self, task, thread, summary, output_config, **kwargs):
        if self.gate is not None:
            await self.gate.wait()
        if output_config.database_id in self.failing:
            raise TransientError(f"Notion unavailable for {output_config.database_id}", source="notion")
        self.created.append((task.title, output_config.database_id))
        n = len(self.created)
        return CreatedTask(id=f"page-{n}", url=f"https://notion.so/page-{n}")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def slack_event():
    """Slack Events API envelope for the banner scenario."""
    return {
        "type": "event_callback",
        "team_id": "T1",
        "event": {
            "type": "message",
            "channel": "C1",
            "user": "U1",
            "text": "Ship the banner redesign",
            "ts": "100.1",
            "channel_type": "channel",
        },
    }


@pytest.fixture
def config_service():
    """Flow for team T1 with a design output and a default output."""
    service = InMemoryConfigurationService()
    service.add_flow(
        Flow(id="flow-1", team_id="T1", name="Product", available_domains=["design", "frontend"]),
        inputs=[
            FlowInput(
                id="input-slack",
                flow_id="flow-1",
                source_type=SourceType.SLACK,
                api_token="xoxb-test",
                source_metadata={"slack_team_id": "T1"},
            )
        ],
        outputs=[
            make_output("design", domains=["design"]),
            make_output("default", is_default=True),
        ],
    )
    return service


@pytest.fixture
def store():
    return InMemoryDiscussionStore()


@pytest.fixture
def inflight():
    return InMemoryInFlightRegistry()


@pytest.fixture
def fake_adapter():
    return FakeAdapter()


@pytest.fixture
def fake_ai():
    return FakeAIService()


@pytest.fixture
def fake_creator():
    return FakeTaskCreator()


@pytest.fixture
def processor(config_service, store, inflight, fake_ai, fake_creator, fake_adapter):
    return DiscussionProcessor(
        config_service=config_service,
        store=store,
        inflight=inflight,
        ai_service=fake_ai,
        task_creator=fake_creator,
        adapter_lookup=lambda source_type: fake_adapter,
        thread_retry_policy=RetryPolicy(max_attempts=2, backoff=NoBackoff()),
    )

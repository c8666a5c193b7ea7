"""
Tests for the Notion source adapter.
"""

import json

import httpx
import pytest

from discubot.adapters import NotionAdapter, check_for_trigger
from discubot.config import AdapterConfig
from discubot.errors import ConfigurationError, MalformedInputError, NotFoundError, TransientError
from discubot.integrations.notion import NotionClient, NotionConfig
from discubot.models import DiscussionStatus, SourceType


def text(value: str) -> list[dict]:
    return [{"type": "text", "plain_text": value, "text": {"content": value}}]


def notion_adapter(handler) -> NotionAdapter:
    transport = httpx.MockTransport(handler)
    return NotionAdapter(
        client_factory=lambda token: NotionClient(
            NotionConfig(api_key=token, max_retries=0),
            transport=transport,
        )
    )


@pytest.fixture
def notion_config():
    return AdapterConfig(
        source_type=SourceType.NOTION,
        api_token="secret_test",
        metadata={"workspace_id": "W1"},
    )


@pytest.fixture
def comment_event():
    return {
        "type": "comment.created",
        "workspace_id": "W1",
        "timestamp": "2024-03-01T09:00:00.000Z",
        "data": {
            "id": "comment-1",
            "discussion_id": "disc-1",
            "parent": {"type": "page_id", "page_id": "page-1"},
            "created_by": {"id": "user-1"},
        },
    }


class TestTrigger:
    """Trigger keyword detection."""

    def test_case_insensitive(self):
        assert check_for_trigger(text("Hey @Discubot please file this")) is True

    def test_absent(self):
        assert check_for_trigger(text("Just chatting")) is False

    def test_custom_keyword(self):
        assert check_for_trigger(text("ping !task"), "!task") is True
        assert check_for_trigger(text("ping @discubot"), "!task") is False

    def test_empty(self):
        assert check_for_trigger([]) is False
        assert check_for_trigger(None) is False


class TestParseIncoming:
    """comment.created normalization."""

    @pytest.mark.asyncio
    async def test_without_config_leaves_content_empty(self, comment_event):
        parsed = await NotionAdapter().parse_incoming(comment_event)

        assert parsed.source_thread_id == "page-1:disc-1"
        assert parsed.team_id == "W1"
        assert parsed.author_handle == "user-1"
        assert parsed.content == ""
        assert parsed.missing_fields() == ["content"]
        assert parsed.source_url == "https://www.notion.so/page1?d=disc1"

    @pytest.mark.asyncio
    async def test_fetches_comment_body(self, comment_event, notion_config):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/comments/comment-1"
            assert request.headers["Notion-Version"] == "2022-06-28"
            return httpx.Response(
                200,
                json={
                    "id": "comment-1",
                    "rich_text": text("@discubot Ship the banner\nby Friday"),
                    "created_time": "2024-03-01T09:00:00.000Z",
                },
            )

        parsed = await notion_adapter(handler).parse_incoming(comment_event, notion_config)

        assert parsed.content == "@discubot Ship the banner\nby Friday"
        assert parsed.title == "@discubot Ship the banner"
        assert parsed.metadata["comment_id"] == "comment-1"

    @pytest.mark.asyncio
    async def test_block_parent(self, comment_event):
        comment_event["data"]["parent"] = {"type": "block_id", "block_id": "block-9"}

        parsed = await NotionAdapter().parse_incoming(comment_event)

        assert parsed.source_thread_id == "block-9:disc-1"

    @pytest.mark.asyncio
    async def test_unsupported_event(self, comment_event):
        comment_event["type"] = "page.updated"

        with pytest.raises(MalformedInputError):
            await NotionAdapter().parse_incoming(comment_event)

    @pytest.mark.asyncio
    async def test_missing_discussion_id(self, comment_event):
        del comment_event["data"]["discussion_id"]

        with pytest.raises(MalformedInputError):
            await NotionAdapter().parse_incoming(comment_event)

    @pytest.mark.asyncio
    async def test_comment_fetch_outage_is_retryable(self, comment_event, notion_config):
        adapter = notion_adapter(lambda r: httpx.Response(502, text="bad gateway"))

        with pytest.raises(TransientError):
            await adapter.parse_incoming(comment_event, notion_config)


class TestFetchThread:
    """Discussion reconstruction from page comments."""

    @pytest.mark.asyncio
    async def test_filters_discussion_and_paginates(self, notion_config):
        pages = {
            None: {
                "results": [
                    {
                        "id": "c2",
                        "discussion_id": "disc-1",
                        "rich_text": text("Agreed"),
                        "created_by": {"id": "user-2"},
                        "created_time": "2024-03-01T10:00:00.000Z",
                    },
                    {
                        "id": "x1",
                        "discussion_id": "disc-2",
                        "rich_text": text("Other thread"),
                        "created_time": "2024-03-01T08:00:00.000Z",
                    },
                ],
                "has_more": True,
                "next_cursor": "cur-2",
            },
            "cur-2": {
                "results": [
                    {
                        "id": "c1",
                        "discussion_id": "disc-1",
                        "rich_text": text("Ship the banner"),
                        "created_by": {"id": "user-1"},
                        "created_time": "2024-03-01T09:00:00.000Z",
                    }
                ],
                "has_more": False,
                "next_cursor": None,
            },
        }

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["block_id"] == "page-1"
            return httpx.Response(200, json=pages[request.url.params.get("start_cursor")])

        thread = await notion_adapter(handler).fetch_thread("page-1:disc-1", notion_config)

        assert thread.root_message.content == "Ship the banner"
        assert [r.id for r in thread.replies] == ["c2"]
        assert thread.participants == frozenset({"user-1", "user-2"})

    @pytest.mark.asyncio
    async def test_repeated_fetch_is_stable(self, notion_config):
        comments = [
            {
                "id": "c1",
                "discussion_id": "disc-1",
                "rich_text": text("Ship the banner"),
                "created_by": {"id": "user-1"},
                "created_time": "2024-03-01T09:00:00.000Z",
            },
            {
                "id": "c3",
                "discussion_id": "disc-1",
                "rich_text": text("Same minute"),
                "created_by": {"id": "user-3"},
                "created_time": "2024-03-01T10:00:00.000Z",
            },
            {
                "id": "c2",
                "discussion_id": "disc-1",
                "rich_text": text("Agreed"),
                "created_by": {"id": "user-2"},
                "created_time": "2024-03-01T10:00:00.000Z",
            },
            {
                "id": "c4",
                "discussion_id": "disc-1",
                "rich_text": text("No timestamp"),
                "created_by": {"id": "user-4"},
            },
        ]
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            ordered = comments if len(calls) % 2 else list(reversed(comments))
            return httpx.Response(200, json={"results": ordered, "has_more": False, "next_cursor": None})

        adapter = notion_adapter(handler)
        first = await adapter.fetch_thread("page-1:disc-1", notion_config)
        second = await adapter.fetch_thread("page-1:disc-1", notion_config)

        assert len(calls) == 2
        assert first.root_message == second.root_message
        assert first.replies == second.replies
        assert first.root_message.id == "c4"
        assert [r.id for r in first.replies] == ["c1", "c2", "c3"]

    @pytest.mark.asyncio
    async def test_empty_discussion(self, notion_config):
        adapter = notion_adapter(lambda r: httpx.Response(200, json={"results": [], "has_more": False}))

        with pytest.raises(NotFoundError):
            await adapter.fetch_thread("page-1:disc-1", notion_config)

    @pytest.mark.asyncio
    async def test_missing_token(self):
        config = AdapterConfig(source_type=SourceType.NOTION)

        with pytest.raises(ConfigurationError):
            await NotionAdapter().fetch_thread("page-1:disc-1", config)


class TestFeedback:
    """Replies go into the discussion; statuses are a no-op."""

    @pytest.mark.asyncio
    async def test_reply(self, notion_config):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"id": "c3"})

        ok = await notion_adapter(handler).post_reply("page-1:disc-1", "Created", notion_config)

        assert ok is True
        assert bodies[0]["discussion_id"] == "disc-1"
        assert bodies[0]["rich_text"][0]["text"]["content"] == "Created"

    @pytest.mark.asyncio
    async def test_status_is_noop(self, notion_config):
        adapter = notion_adapter(lambda r: pytest.fail("no request expected"))

        assert await adapter.update_status("page-1:disc-1", DiscussionStatus.COMPLETED, notion_config) is True

    def test_validate_config(self, notion_config):
        assert NotionAdapter().validate_config(notion_config).valid is True

        odd = AdapterConfig(source_type=SourceType.NOTION, api_token="abc", metadata={"workspace_id": "W1"})
        result = NotionAdapter().validate_config(odd)
        assert result.valid is True
        assert len(result.warnings) == 1

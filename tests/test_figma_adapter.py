"""
Tests for the Figma source adapter and email parsing.
"""

import json

import httpx
import pytest

from discubot.adapters import FigmaAdapter
from discubot.config import AdapterConfig
from discubot.errors import MalformedInputError, NotFoundError, TransientError
from discubot.integrations.figma import FigmaClient, FigmaConfig
from discubot.models import DiscussionStatus, SourceType
from discubot.utils.email import (
    determine_email_type,
    extract_file_key_from_url,
    extract_links_from_html,
    extract_text_from_html,
    parse_figma_email,
    recipient_slug,
)

COMMENTS = [
    {
        "id": "1",
        "message": "Older root",
        "created_at": "2024-01-01T10:00:00Z",
        "user": {"handle": "alice"},
    },
    {
        "id": "2",
        "message": "Banner colours are off",
        "created_at": "2024-01-02T10:00:00Z",
        "user": {"handle": "bob"},
    },
    {
        "id": "4",
        "parent_id": "2",
        "message": "Fixing today",
        "created_at": "2024-01-02T12:00:00Z",
        "user": {"handle": "alice"},
    },
    {
        "id": "3",
        "parent_id": "2",
        "message": "Which ones?",
        "created_at": "2024-01-02T11:00:00Z",
        "user": {"handle": "carol"},
    },
]


def figma_adapter(handler) -> FigmaAdapter:
    transport = httpx.MockTransport(handler)
    return FigmaAdapter(
        client_factory=lambda token: FigmaClient(
            FigmaConfig(api_key=token, max_retries=0),
            transport=transport,
        )
    )


@pytest.fixture
def figma_config():
    return AdapterConfig(source_type=SourceType.FIGMA, api_token="figd_" + "x" * 30)


@pytest.fixture
def figma_email():
    return {
        "from": "Bob <comments-ABC123@email.figma.com>",
        "recipient": "acme@inbound.discubot.app",
        "subject": "Bob commented on Landing Page",
        "body-plain": "Banner colours are off",
        "body-html": (
            '<html><body><p class="comment-body">Banner colours are off</p>'
            '<a href="https://www.figma.com/design/ABC123/Landing-Page?node-id=1">Open</a>'
            "</body></html>"
        ),
        "timestamp": "1704189600",
    }


# =============================================================================
# Email parsing
# =============================================================================


class TestEmailParsing:
    """Notification email helpers."""

    def test_file_key_from_urls(self):
        assert extract_file_key_from_url("https://www.figma.com/file/abc123/Design") == "abc123"
        assert extract_file_key_from_url("https://www.figma.com/design/XyZ9/Name") == "XyZ9"
        assert extract_file_key_from_url("https://example.com/nothing") is None

    def test_text_from_html_prefers_comment_body(self):
        html = '<html><body><div>Header</div><div class="comment-body">Looks good</div></body></html>'
        assert extract_text_from_html(html) == "Looks good"

    def test_text_from_html_ignores_scripts(self):
        html = "<html><body><script>var x = 1;</script><div>Plain body</div></body></html>"
        assert extract_text_from_html(html) == "Plain body"

    def test_links_prioritise_comment_images(self):
        html = (
            '<a href="https://www.figma.com/file/K1/A">file</a>'
            '<img src="https://www.figma.com/img?commentx=1&commenty=2">'
            '<a href="mailto:someone@example.com">mail</a>'
            '<a href="https://www.figma.com/file/K1/A">again</a>'
        )

        links = extract_links_from_html(html)

        assert links == [
            "https://www.figma.com/img?commentx=1&commenty=2",
            "https://www.figma.com/file/K1/A",
        ]

    def test_email_type(self):
        assert determine_email_type("Bob commented on X") == "comment"
        assert determine_email_type("You were invited to X") == "invitation"
        assert determine_email_type(None) == "unknown"

    def test_recipient_slug(self):
        assert recipient_slug("acme@inbound.example.com") == "acme"
        assert recipient_slug(None) == "default"
        assert recipient_slug("not-an-address") == "default"

    def test_file_key_from_sender(self, figma_email):
        email = parse_figma_email(figma_email)

        assert email.file_key == "ABC123"
        assert email.text == "Banner colours are off"
        assert email.file_url.startswith("https://www.figma.com/design/ABC123")
        assert email.file_name == "Landing Page"
        assert email.email_type == "comment"
        assert email.timestamp.year == 2024

    def test_file_key_from_link_when_sender_is_generic(self, figma_email):
        figma_email["from"] = "notifications@figma.com"

        assert parse_figma_email(figma_email).file_key == "ABC123"

    def test_text_falls_back_to_html(self, figma_email):
        del figma_email["body-plain"]

        assert parse_figma_email(figma_email).text == "Banner colours are off"


# =============================================================================
# parse_incoming
# =============================================================================


class TestParseIncoming:
    """Figma email payload normalization."""

    @pytest.mark.asyncio
    async def test_comment_email(self, figma_email):
        parsed = await FigmaAdapter().parse_incoming(figma_email)

        assert parsed.source_type == SourceType.FIGMA
        assert parsed.source_thread_id == "ABC123"
        assert parsed.team_id == "acme"
        assert parsed.title == "Bob commented on Landing Page"
        assert parsed.content == "Banner colours are off"
        assert parsed.metadata["file_key"] == "ABC123"

    @pytest.mark.asyncio
    async def test_missing_file_key(self, figma_email):
        figma_email["from"] = "someone@example.com"
        figma_email["body-html"] = "<p>No links here</p>"

        with pytest.raises(MalformedInputError, match="file key"):
            await FigmaAdapter().parse_incoming(figma_email)

    @pytest.mark.asyncio
    async def test_missing_text(self, figma_email):
        figma_email["body-plain"] = ""
        figma_email["body-html"] = ""

        with pytest.raises(MalformedInputError):
            await FigmaAdapter().parse_incoming(figma_email)


# =============================================================================
# fetch_thread and feedback
# =============================================================================


class TestFetchThread:
    """Comment thread reconstruction."""

    @pytest.mark.asyncio
    async def test_latest_root_when_no_comment_id(self, figma_config):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/files/ABC123/comments"
            assert request.headers["X-Figma-Token"] == figma_config.token
            return httpx.Response(200, json={"comments": COMMENTS})

        thread = await figma_adapter(handler).fetch_thread("ABC123", figma_config)

        assert thread.id == "ABC123:2"
        assert thread.root_message.content == "Banner colours are off"
        assert [r.content for r in thread.replies] == ["Which ones?", "Fixing today"]
        assert thread.participants == frozenset({"alice", "bob", "carol"})

    @pytest.mark.asyncio
    async def test_repeated_fetch_is_stable(self, figma_config):
        comments = [
            *COMMENTS,
            {
                "id": "5",
                "message": "Same time as the banner root",
                "created_at": "2024-01-02T10:00:00Z",
                "user": {"handle": "dave"},
            },
            {
                "id": "7",
                "parent_id": "5",
                "message": "Second reply",
                "created_at": "2024-01-02T11:00:00Z",
                "user": {"handle": "bob"},
            },
            {
                "id": "6",
                "parent_id": "5",
                "message": "First reply",
                "created_at": "2024-01-02T11:00:00Z",
                "user": {"handle": "carol"},
            },
        ]
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            ordered = comments if len(calls) % 2 else list(reversed(comments))
            return httpx.Response(200, json={"comments": ordered})

        adapter = figma_adapter(handler)
        first = await adapter.fetch_thread("ABC123", figma_config)
        second = await adapter.fetch_thread("ABC123", figma_config)

        assert len(calls) == 2
        assert first.id == second.id == "ABC123:5"
        assert first.root_message == second.root_message
        assert first.replies == second.replies
        assert [r.id for r in first.replies] == ["6", "7"]

    @pytest.mark.asyncio
    async def test_specific_comment(self, figma_config):
        adapter = figma_adapter(lambda r: httpx.Response(200, json={"comments": COMMENTS}))

        thread = await adapter.fetch_thread("ABC123:1", figma_config)

        assert thread.id == "ABC123:1"
        assert thread.replies == ()

    @pytest.mark.asyncio
    async def test_unknown_comment(self, figma_config):
        adapter = figma_adapter(lambda r: httpx.Response(200, json={"comments": COMMENTS}))

        with pytest.raises(NotFoundError):
            await adapter.fetch_thread("ABC123:999", figma_config)

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self, figma_config):
        adapter = figma_adapter(lambda r: httpx.Response(503, text="unavailable"))

        with pytest.raises(TransientError):
            await adapter.fetch_thread("ABC123", figma_config)

    @pytest.mark.asyncio
    async def test_reply_targets_comment(self, figma_config):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"id": "5"})

        ok = await figma_adapter(handler).post_reply("ABC123:2", "Done", figma_config)

        assert ok is True
        assert bodies == [("/v1/files/ABC123/comments", {"message": "Done", "comment_id": "2"})]

    @pytest.mark.asyncio
    async def test_feedback_needs_comment_id(self, figma_config):
        adapter = figma_adapter(lambda r: pytest.fail("no request expected"))

        assert await adapter.post_reply("ABC123", "Done", figma_config) is False
        assert await adapter.update_status("ABC123", DiscussionStatus.COMPLETED, figma_config) is False

    @pytest.mark.asyncio
    async def test_status_reaction(self, figma_config):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append((request.url.path, json.loads(request.content)["emoji"]))
            return httpx.Response(200, json={})

        ok = await figma_adapter(handler).update_status("ABC123:2", DiscussionStatus.COMPLETED, figma_config)

        assert ok is True
        assert paths == [("/v1/files/ABC123/comments/2/reactions", ":white_check_mark:")]


class TestConfiguration:
    """validate_config."""

    def test_short_token_warns(self):
        config = AdapterConfig(source_type=SourceType.FIGMA, api_token="short")
        result = FigmaAdapter().validate_config(config)
        assert result.valid is True
        assert result.warnings == ["Figma API token appears to be too short"]

    def test_missing_token(self):
        result = FigmaAdapter().validate_config(AdapterConfig(source_type=SourceType.FIGMA))
        assert result.valid is False

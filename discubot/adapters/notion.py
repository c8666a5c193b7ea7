"""
Notion source adapter.

Notion webhooks announce ``comment.created`` events without the comment
body; when a token is available the body is fetched from the comments API.
A discussion is one comment thread on a page or block, identified as
``<parentId>:<discussionId>``.

Notion has no reactions API, so status updates are a successful no-op.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from discubot.config.schemas import AdapterConfig
from discubot.errors import DiscubotError, MalformedInputError, NotFoundError
from discubot.integrations.notion import NotionClient, NotionConfig
from discubot.models import (
    DiscussionStatus,
    DiscussionThread,
    ParsedDiscussion,
    SourceType,
    ThreadMessage,
)

from .base import ConfigValidation, SourceAdapter, extract_title, split_thread_id, to_domain_error

logger = logging.getLogger(__name__)

DEFAULT_TRIGGER_KEYWORD = "@discubot"

_TOKEN_PREFIXES = ("secret_", "ntn_")


def check_for_trigger(rich_text: list[dict[str, Any]] | None, keyword: str = DEFAULT_TRIGGER_KEYWORD) -> bool:
    """Whether the comment's plain text mentions ``keyword`` (case-insensitive)."""
    if not rich_text or not keyword:
        return False
    return keyword.lower() in rich_text_to_plain(rich_text).lower()


def rich_text_to_plain(rich_text: list[dict[str, Any]] | None) -> str:
    return "".join(part.get("plain_text") or "" for part in rich_text or [])


def _notion_time(value: str | None) -> datetime:
    if not value:
        return datetime.fromtimestamp(0, UTC)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class NotionAdapter(SourceAdapter):
    """Adapter for Notion page-comment discussions."""

    source_type = SourceType.NOTION

    def __init__(self, client_factory: Callable[[str], NotionClient] | None = None):
        self._client_factory = client_factory or (lambda token: NotionClient(NotionConfig(api_key=token)))

    def _client(self, config: AdapterConfig) -> NotionClient:
        return self._client_factory(self._require_token(config))

    async def fetch_comment(self, comment_id: str, config: AdapterConfig) -> dict[str, Any]:
        """
        Retrieve one comment.

        Raises:
            DiscubotError: Translated client error (retryable for 429/5xx)
        """
        async with self._client(config) as client:
            try:
                return await client.retrieve_comment(comment_id)
            except DiscubotError as e:
                raise to_domain_error(e, self.source_type) from e

    async def parse_incoming(
        self,
        payload: dict[str, Any],
        config: AdapterConfig | None = None,
    ) -> ParsedDiscussion:
        event_type = payload.get("type")
        if event_type != "comment.created":
            raise MalformedInputError(f"Unsupported event type: {event_type}", source="notion")

        data = payload.get("data") or {}
        parent = data.get("parent") or {}
        comment_id = data.get("id")
        discussion_id = data.get("discussion_id")
        parent_id = parent.get("page_id") or parent.get("block_id")
        if not comment_id or not discussion_id or not parent_id:
            raise MalformedInputError(
                "Missing required IDs (comment, discussion or parent)", source="notion"
            )

        content = ""
        author = (data.get("created_by") or {}).get("id") or ""
        created_time = data.get("created_time") or payload.get("timestamp")

        if config is not None and config.token:
            comment = await self.fetch_comment(comment_id, config)
            content = rich_text_to_plain(comment.get("rich_text")).strip()
            author = author or (comment.get("created_by") or {}).get("id") or ""
            created_time = comment.get("created_time") or created_time

        author = author or "unknown"
        workspace_id = payload.get("workspace_id") or "default"

        return ParsedDiscussion(
            source_type=self.source_type,
            source_thread_id=f"{parent_id}:{discussion_id}",
            source_url=f"https://www.notion.so/{parent_id.replace('-', '')}?d={discussion_id.replace('-', '')}",
            team_id=workspace_id,
            author_handle=author,
            title=extract_title(content, "Notion Comment"),
            content=content,
            participants=frozenset({author}),
            timestamp=_notion_time(created_time) if created_time else datetime.now(UTC),
            metadata={
                "comment_id": comment_id,
                "discussion_id": discussion_id,
                "parent_id": parent_id,
                "parent_type": parent.get("type"),
                "notion_workspace_id": payload.get("workspace_id"),
            },
        )

    async def fetch_thread(self, thread_id: str, config: AdapterConfig) -> DiscussionThread:
        parent_id, discussion_id = split_thread_id(thread_id, "parentId:discussionId")

        async with self._client(config) as client:
            try:
                comments = await client.list_all_comments(parent_id)
            except DiscubotError as e:
                raise to_domain_error(e, self.source_type) from e

        messages = [
            ThreadMessage(
                id=c["id"],
                author_handle=(c.get("created_by") or {}).get("id") or "unknown",
                content=rich_text_to_plain(c.get("rich_text")),
                timestamp=_notion_time(c.get("created_time")),
            )
            for c in comments
            if c.get("discussion_id") == discussion_id
        ]
        if not messages:
            raise NotFoundError(f"No comments found in discussion {thread_id}", source="notion")

        return DiscussionThread.from_messages(
            thread_id,
            messages,
            metadata={"parent_id": parent_id, "discussion_id": discussion_id},
        )

    async def post_reply(self, thread_id: str, message: str, config: AdapterConfig) -> bool:
        try:
            _, discussion_id = split_thread_id(thread_id, "parentId:discussionId")
            async with self._client(config) as client:
                await client.create_comment(discussion_id, message)
            return True
        except Exception as e:
            logger.error(f"[notion] Failed to post reply to {thread_id}: {e}")
            return False

    async def update_status(
        self,
        thread_id: str,
        status: DiscussionStatus,
        config: AdapterConfig,
    ) -> bool:
        logger.debug(f"[notion] Status {status.value} for {thread_id} (no reactions API)")
        return True

    def validate_config(self, config: AdapterConfig) -> ConfigValidation:
        errors: list[str] = []
        warnings: list[str] = []

        token = config.token.strip()
        if not token:
            errors.append("Notion API token is required")
        elif not token.startswith(_TOKEN_PREFIXES):
            warnings.append("Notion API token should start with 'secret_' or 'ntn_'")

        if not config.metadata.get("workspace_id"):
            warnings.append("No Notion workspace ID configured; events cannot be matched to this input")

        self._check_source_type(config, errors)
        return ConfigValidation.from_messages(errors, warnings)

    async def test_connection(self, config: AdapterConfig) -> bool:
        if not config.token:
            return False
        try:
            async with self._client(config) as client:
                await client.users_me()
            return True
        except Exception as e:
            logger.error(f"[notion] Connection test failed: {e}")
            return False


__all__ = [
    "DEFAULT_TRIGGER_KEYWORD",
    "NotionAdapter",
    "check_for_trigger",
    "rich_text_to_plain",
]

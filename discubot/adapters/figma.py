"""
Figma source adapter.

Figma has no comment webhooks for arbitrary files, so comments arrive as
notification emails forwarded by the inbound mail provider. The email
carries the file key (sender address or links) and the comment text; the
full thread is read back through the REST API.

Thread ids:
    "<fileKey>"              the file's most recent root comment
    "<fileKey>:<commentId>"  one specific comment thread

Replies and reactions need the comment id, so they only work with the
second form (``fetch_thread`` returns it as the thread id).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from discubot.config.schemas import AdapterConfig
from discubot.errors import DiscubotError, MalformedInputError, NotFoundError
from discubot.integrations.figma import FigmaClient, FigmaConfig
from discubot.models import (
    DiscussionStatus,
    DiscussionThread,
    ParsedDiscussion,
    SourceType,
    ThreadMessage,
)
from discubot.utils.email import parse_figma_email, recipient_slug

from .base import ConfigValidation, SourceAdapter, to_domain_error

logger = logging.getLogger(__name__)

STATUS_EMOJI: dict[DiscussionStatus, str] = {
    DiscussionStatus.PENDING: ":eyes:",
    DiscussionStatus.PROCESSING: ":hourglass:",
    DiscussionStatus.ANALYZED: ":robot:",
    DiscussionStatus.COMPLETED: ":white_check_mark:",
    DiscussionStatus.FAILED: ":x:",
    DiscussionStatus.RETRYING: ":arrows_counterclockwise:",
}

MIN_TOKEN_LENGTH = 20


def _figma_time(value: str | None) -> datetime:
    if not value:
        return datetime.fromtimestamp(0, UTC)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _to_message(comment: dict[str, Any]) -> ThreadMessage:
    user = comment.get("user") or {}
    return ThreadMessage(
        id=str(comment["id"]),
        author_handle=user.get("handle") or user.get("id") or "unknown",
        content=comment.get("message") or "",
        timestamp=_figma_time(comment.get("created_at")),
    )


class FigmaAdapter(SourceAdapter):
    """Adapter for Figma file comments delivered by email."""

    source_type = SourceType.FIGMA

    def __init__(self, client_factory: Callable[[str], FigmaClient] | None = None):
        self._client_factory = client_factory or (lambda token: FigmaClient(FigmaConfig(api_key=token)))

    def _client(self, config: AdapterConfig) -> FigmaClient:
        return self._client_factory(self._require_token(config))

    async def parse_incoming(
        self,
        payload: dict[str, Any],
        config: AdapterConfig | None = None,
    ) -> ParsedDiscussion:
        try:
            email = parse_figma_email(payload)
        except Exception as e:
            raise MalformedInputError(f"Failed to parse Figma email: {e}", source="figma") from e

        if not email.file_key:
            raise MalformedInputError("No Figma file key found in email", source="figma")
        if not email.text.strip():
            raise MalformedInputError("No comment text found in email", source="figma")

        recipient = payload.get("recipient")
        slug = recipient_slug(recipient)
        author = email.author or "unknown"

        return ParsedDiscussion(
            source_type=self.source_type,
            source_thread_id=email.file_key,
            source_url=email.file_url or f"https://www.figma.com/file/{email.file_key}",
            team_id=slug,
            author_handle=author,
            title=email.subject or "Figma Comment",
            content=email.text,
            participants=frozenset({author}) if email.author else frozenset(),
            timestamp=email.timestamp or datetime.now(UTC),
            metadata={
                "file_key": email.file_key,
                "email_type": email.email_type,
                "file_name": email.file_name,
                "links": email.links,
                "email_slug": slug,
                "recipient_email": recipient,
            },
        )

    async def fetch_thread(self, thread_id: str, config: AdapterConfig) -> DiscussionThread:
        file_key, _, target_id = thread_id.partition(":")
        if not file_key:
            raise MalformedInputError("Figma thread ID needs a file key", source="figma")

        async with self._client(config) as client:
            try:
                comments = await client.get_comments(file_key)
            except DiscubotError as e:
                raise to_domain_error(e, self.source_type) from e

        if target_id:
            root = next((c for c in comments if str(c.get("id")) == target_id), None)
        else:
            roots = [c for c in comments if not c.get("parent_id")]
            root = max(
                roots,
                key=lambda c: (_figma_time(c.get("created_at")), str(c.get("id"))),
                default=None,
            )

        if root is None:
            raise NotFoundError(f"Comment not found in file {file_key}", source="figma")

        root_id = str(root["id"])
        root_message = _to_message(root)
        replies = sorted(
            (_to_message(c) for c in comments if str(c.get("parent_id") or "") == root_id),
            key=lambda m: (m.timestamp, m.id),
        )

        return DiscussionThread(
            id=f"{file_key}:{root_id}",
            root_message=root_message,
            replies=tuple(replies),
            participants=frozenset(m.author_handle for m in (root_message, *replies)),
            metadata={
                "file_key": file_key,
                "comment_id": root_id,
                "resolved": root.get("resolved_at") is not None,
                "created_at": root.get("created_at"),
            },
        )

    async def post_reply(self, thread_id: str, message: str, config: AdapterConfig) -> bool:
        file_key, _, comment_id = thread_id.partition(":")
        if not comment_id:
            logger.warning(f"[figma] No comment id in {thread_id}, cannot post reply")
            return False
        try:
            async with self._client(config) as client:
                await client.post_comment(file_key, message, comment_id=comment_id)
            return True
        except Exception as e:
            logger.error(f"[figma] Failed to post reply to {thread_id}: {e}")
            return False

    async def update_status(
        self,
        thread_id: str,
        status: DiscussionStatus,
        config: AdapterConfig,
    ) -> bool:
        file_key, _, comment_id = thread_id.partition(":")
        if not comment_id:
            logger.warning(f"[figma] No comment id in {thread_id}, cannot add reaction")
            return False
        try:
            async with self._client(config) as client:
                await client.post_reaction(file_key, comment_id, STATUS_EMOJI[status])
            return True
        except Exception as e:
            logger.error(f"[figma] Failed to update status on {thread_id}: {e}")
            return False

    def validate_config(self, config: AdapterConfig) -> ConfigValidation:
        errors: list[str] = []
        warnings: list[str] = []

        token = config.token.strip()
        if not token:
            errors.append("Figma API token is required")
        elif len(token) < MIN_TOKEN_LENGTH:
            warnings.append("Figma API token appears to be too short")

        self._check_source_type(config, errors)
        return ConfigValidation.from_messages(errors, warnings)

    async def test_connection(self, config: AdapterConfig) -> bool:
        try:
            async with self._client(config) as client:
                await client.get_me()
            return True
        except Exception as e:
            logger.error(f"[figma] Connection test failed: {e}")
            return False

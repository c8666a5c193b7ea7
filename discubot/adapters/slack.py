"""
Slack source adapter.

Inbound events come from the Slack Events API (``message`` and
``app_mention``). A discussion is a thread: its id is
``<channel>:<thread_ts>`` where ``thread_ts`` is the root message ts, so a
root message and any reply in the same thread collide on one key.

Status markers are emoji reactions on the root message.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from discubot.config.schemas import AdapterConfig
from discubot.errors import DiscubotError, MalformedInputError, NotFoundError
from discubot.integrations.slack import SlackClient, SlackConfig
from discubot.models import (
    DiscussionStatus,
    DiscussionThread,
    ParsedDiscussion,
    SourceType,
    ThreadMessage,
)

from .base import ConfigValidation, SourceAdapter, extract_title, split_thread_id, to_domain_error

logger = logging.getLogger(__name__)

STATUS_EMOJI: dict[DiscussionStatus, str] = {
    DiscussionStatus.PENDING: "eyes",
    DiscussionStatus.PROCESSING: "hourglass_flowing_sand",
    DiscussionStatus.ANALYZED: "robot_face",
    DiscussionStatus.COMPLETED: "white_check_mark",
    DiscussionStatus.FAILED: "x",
    DiscussionStatus.RETRYING: "arrows_counterclockwise",
}

_SUPPORTED_EVENTS = ("message", "app_mention")


def _slack_time(ts: str) -> datetime:
    return datetime.fromtimestamp(float(ts), UTC)


class SlackAdapter(SourceAdapter):
    """Adapter for Slack channel threads."""

    source_type = SourceType.SLACK

    def __init__(self, client_factory: Callable[[str], SlackClient] | None = None):
        self._client_factory = client_factory or (lambda token: SlackClient(SlackConfig(api_key=token)))

    def _client(self, config: AdapterConfig) -> SlackClient:
        return self._client_factory(self._require_token(config))

    async def parse_incoming(
        self,
        payload: dict[str, Any],
        config: AdapterConfig | None = None,
    ) -> ParsedDiscussion:
        if payload.get("type") == "url_verification":
            raise MalformedInputError(
                "URL verification challenge received - handle separately", source="slack"
            )

        event = payload.get("event")
        if not isinstance(event, dict):
            raise MalformedInputError("No event found in Slack payload", source="slack")

        event_type = event.get("type")
        if event_type not in _SUPPORTED_EVENTS:
            raise MalformedInputError(f"Unsupported event type: {event_type}", source="slack")

        # Edits, deletions, bot posts, joins
        if event_type == "message" and event.get("subtype"):
            raise MalformedInputError(
                f"Message subtype not supported: {event['subtype']}", source="slack"
            )

        text = (event.get("text") or "").strip()
        if not text:
            raise MalformedInputError("No message text found in event", source="slack")
        channel = event.get("channel")
        if not channel:
            raise MalformedInputError("No channel ID found in event", source="slack")
        user = event.get("user")
        if not user:
            raise MalformedInputError("No user ID found in event", source="slack")
        ts = event.get("ts")
        if not ts:
            raise MalformedInputError("No message timestamp found in event", source="slack")

        team_id = payload.get("team_id") or "default"
        thread_ts = event.get("thread_ts") or ts

        try:
            timestamp = _slack_time(ts)
        except ValueError as e:
            raise MalformedInputError(f"Invalid message timestamp: {ts}", source="slack") from e

        return ParsedDiscussion(
            source_type=self.source_type,
            source_thread_id=f"{channel}:{thread_ts}",
            source_url=(
                f"https://slack.com/app_redirect?team={team_id}"
                f"&channel={channel}&message_ts={ts}"
            ),
            team_id=team_id,
            author_handle=user,
            title=extract_title(text, "Slack Message"),
            content=text,
            participants=frozenset({user}),
            timestamp=timestamp,
            metadata={
                "slack_team_id": team_id,
                "channel_id": channel,
                "message_ts": ts,
                "thread_ts": event.get("thread_ts"),
                "channel_type": event.get("channel_type"),
            },
        )

    async def fetch_thread(self, thread_id: str, config: AdapterConfig) -> DiscussionThread:
        channel, thread_ts = split_thread_id(thread_id, "channel:thread_ts")

        async with self._client(config) as client:
            try:
                raw_messages = await client.fetch_replies(channel, thread_ts)
            except DiscubotError as e:
                raise to_domain_error(e, self.source_type) from e

        messages = [
            ThreadMessage(
                id=m["ts"],
                author_handle=m.get("user") or m.get("bot_id") or "unknown",
                content=m.get("text") or "",
                timestamp=_slack_time(m["ts"]),
            )
            for m in raw_messages
            if m.get("ts")
        ]
        if not messages:
            raise NotFoundError(f"No messages found in thread {thread_id}", source="slack")

        logger.debug(f"[slack] Thread {thread_id}: {len(messages)} messages")
        return DiscussionThread.from_messages(
            thread_id,
            messages,
            metadata={"channel_id": channel, "thread_ts": thread_ts},
        )

    async def post_reply(self, thread_id: str, message: str, config: AdapterConfig) -> bool:
        try:
            channel, thread_ts = split_thread_id(thread_id, "channel:thread_ts")
            async with self._client(config) as client:
                await client.post_message(channel, message, thread_ts=thread_ts)
            return True
        except Exception as e:
            logger.error(f"[slack] Failed to post reply to {thread_id}: {e}")
            return False

    async def update_status(
        self,
        thread_id: str,
        status: DiscussionStatus,
        config: AdapterConfig,
    ) -> bool:
        try:
            channel, thread_ts = split_thread_id(thread_id, "channel:thread_ts")
            async with self._client(config) as client:
                return await client.add_reaction(channel, thread_ts, STATUS_EMOJI[status])
        except Exception as e:
            logger.error(f"[slack] Failed to update status on {thread_id}: {e}")
            return False

    def validate_config(self, config: AdapterConfig) -> ConfigValidation:
        errors: list[str] = []
        warnings: list[str] = []

        token = config.token.strip()
        if not token:
            errors.append("Slack API token is required")
        elif not token.startswith(("xoxb-", "xoxp-")):
            warnings.append("Slack API token should start with 'xoxb-' or 'xoxp-'")

        if not (config.metadata.get("workspace_id") or config.metadata.get("slack_team_id")):
            warnings.append("No Slack workspace ID configured; events cannot be matched to this input")

        self._check_source_type(config, errors)
        return ConfigValidation.from_messages(errors, warnings)

    async def test_connection(self, config: AdapterConfig) -> bool:
        try:
            async with self._client(config) as client:
                data = await client.auth_test()
            return bool(data.get("ok"))
        except Exception as e:
            logger.error(f"[slack] Connection test failed: {e}")
            return False

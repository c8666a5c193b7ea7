"""
Slack Web API Client for Discubot.

Async access to the handful of Slack Web API methods the chat source
needs: reading thread replies, posting a threaded reply, adding a status
reaction and checking the token.

Slack answers most errors with HTTP 200 and ``{"ok": false, "error": ...}``;
those are mapped onto the integration error taxonomy in
``_check_payload`` so that rate limits are retried like HTTP 429s.

Usage:
    async with SlackClient(SlackConfig(api_key="xoxb-...")) as client:
        messages = await client.fetch_replies("C123", "1700000000.000100")
        await client.post_message("C123", "Done!", thread_ts="1700000000.000100")

API Reference:
    https://api.slack.com/methods
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from discubot.integrations.base import (
    AuthenticationError,
    IntegrationClient,
    IntegrationConfig,
    IntegrationError,
    NotFoundError,
    RateLimitError,
    parse_retry_after,
)

logger = logging.getLogger(__name__)

_NOT_FOUND_ERRORS = frozenset({"channel_not_found", "thread_not_found", "message_not_found"})
_AUTH_ERRORS = frozenset(
    {"invalid_auth", "not_authed", "token_revoked", "token_expired", "account_inactive", "missing_scope"}
)
_RATE_LIMIT_ERRORS = frozenset({"rate_limited", "ratelimited"})


class SlackAPIError(IntegrationError):
    """Slack returned ``ok: false`` with an error code."""

    def __init__(self, error_code: str, **kwargs: Any):
        super().__init__(f"Slack API error: {error_code}", "slack", **kwargs)
        self.error_code = error_code


@dataclass(frozen=True, slots=True)
class SlackConfig(IntegrationConfig):
    """Configuration for Slack client."""

    api_key: str = ""
    base_url: str = "https://slack.com/api"
    timeout: float = 15.0

    def __post_init__(self):
        if not self.api_key:
            raise ValueError("Slack bot token is required")


class SlackClient(IntegrationClient):
    """
    Async client for the Slack Web API.

    Authentication is a bot (xoxb-) or user (xoxp-) token sent as a
    Bearer header.
    """

    def __init__(self, config: SlackConfig, **kwargs: Any):
        super().__init__(config, **kwargs)
        self._config: SlackConfig = config

    @property
    def name(self) -> str:
        return "slack"

    def _get_auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._config.api_key}"}

    def _default_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json; charset=utf-8",
            "Accept": "application/json",
        }

    def _check_payload(self, payload: dict[str, Any], response: httpx.Response) -> None:
        if payload.get("ok", False):
            return

        code = str(payload.get("error", "unknown_error"))

        if code in _RATE_LIMIT_ERRORS:
            raise RateLimitError(
                f"Slack rate limited: {code}",
                self.name,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        if code in _NOT_FOUND_ERRORS:
            raise NotFoundError(f"Slack resource not found: {code}", self.name)
        if code in _AUTH_ERRORS:
            raise AuthenticationError(f"Slack authentication failed: {code}", self.name)

        raise SlackAPIError(code)

    # =========================================================================
    # Conversations
    # =========================================================================

    async def conversations_replies(
        self,
        channel: str,
        ts: str,
        *,
        cursor: str | None = None,
        limit: int = 100,
    ) -> dict[str, Any]:
        """One page of ``conversations.replies``."""
        params: dict[str, Any] = {"channel": channel, "ts": ts, "limit": limit}
        if cursor:
            params["cursor"] = cursor
        return await self._request("GET", "/conversations.replies", params=params)

    async def fetch_replies(self, channel: str, ts: str, *, limit: int = 100) -> list[dict[str, Any]]:
        """
        Fetch every message of a thread, following cursors until exhausted.

        Args:
            channel: Channel ID
            ts: Timestamp of the thread's root message

        Returns:
            Raw Slack message dicts, root first as Slack returns them
        """
        messages: list[dict[str, Any]] = []
        cursor: str | None = None

        while True:
            page = await self.conversations_replies(channel, ts, cursor=cursor, limit=limit)
            messages.extend(page.get("messages") or [])

            cursor = (page.get("response_metadata") or {}).get("next_cursor") or None
            if not cursor or not page.get("has_more", True):
                break

        logger.debug(f"[slack] Fetched {len(messages)} messages for {channel}:{ts}")
        return messages

    # =========================================================================
    # Messages and reactions
    # =========================================================================

    async def post_message(self, channel: str, text: str, *, thread_ts: str | None = None) -> dict[str, Any]:
        """Post a message, threaded when ``thread_ts`` is given."""
        body: dict[str, Any] = {"channel": channel, "text": text}
        if thread_ts:
            body["thread_ts"] = thread_ts
        return await self._request("POST", "/chat.postMessage", json=body)

    async def add_reaction(self, channel: str, timestamp: str, name: str) -> bool:
        """
        Add an emoji reaction to a message.

        Returns:
            True when added or already present
        """
        try:
            await self._request(
                "POST",
                "/reactions.add",
                json={"channel": channel, "timestamp": timestamp, "name": name},
            )
        except SlackAPIError as e:
            if e.error_code == "already_reacted":
                return True
            raise
        return True

    async def auth_test(self) -> dict[str, Any]:
        return await self._request("POST", "/auth.test")

    async def health_check(self) -> bool:
        try:
            data = await self.auth_test()
            return bool(data.get("ok"))
        except Exception as e:
            logger.warning(f"[slack] Health check failed: {e}")
            return False

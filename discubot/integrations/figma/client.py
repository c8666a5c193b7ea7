"""
Figma REST API Client for Discubot.

Covers the comment endpoints used by the design-comment source: listing a
file's comments, replying inside a comment thread and reacting to a comment.

Authentication uses a personal access token sent in the ``X-Figma-Token``
header.

Usage:
    async with FigmaClient(FigmaConfig(api_key="figd_...")) as client:
        comments = await client.get_comments("AbC123xyz")
        await client.post_reaction("AbC123xyz", comments[0]["id"], ":eyes:")

API Reference:
    https://www.figma.com/developers/api#comments
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from discubot.integrations.base import IntegrationClient, IntegrationConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FigmaConfig(IntegrationConfig):
    """Configuration for Figma client."""

    api_key: str = ""
    base_url: str = "https://api.figma.com/v1"
    timeout: float = 15.0

    def __post_init__(self):
        if not self.api_key:
            raise ValueError("Figma API token is required")


class FigmaClient(IntegrationClient):
    """Async client for the Figma comments API."""

    def __init__(self, config: FigmaConfig, **kwargs: Any):
        super().__init__(config, **kwargs)
        self._config: FigmaConfig = config

    @property
    def name(self) -> str:
        return "figma"

    def _get_auth_headers(self) -> dict[str, str]:
        return {"X-Figma-Token": self._config.api_key}

    # =========================================================================
    # Comments
    # =========================================================================

    async def get_comments(self, file_key: str) -> list[dict[str, Any]]:
        """
        List every comment on a file.

        Figma returns the whole list in one response; replies carry the
        root comment's id in ``parent_id``.
        """
        payload = await self._request("GET", f"/files/{file_key}/comments")
        comments = payload.get("comments") or []
        logger.debug(f"[figma] {len(comments)} comments on file {file_key}")
        return comments

    async def post_comment(
        self,
        file_key: str,
        message: str,
        *,
        comment_id: str | None = None,
    ) -> dict[str, Any]:
        """Post a comment; with ``comment_id`` it becomes a threaded reply."""
        body: dict[str, Any] = {"message": message}
        if comment_id:
            body["comment_id"] = comment_id
        return await self._request("POST", f"/files/{file_key}/comments", json=body)

    async def post_reaction(self, file_key: str, comment_id: str, emoji: str) -> None:
        """Add a reaction (``:shortcode:`` form) to a comment."""
        await self._request(
            "POST",
            f"/files/{file_key}/comments/{comment_id}/reactions",
            json={"emoji": emoji},
        )

    # =========================================================================
    # Account
    # =========================================================================

    async def get_me(self) -> dict[str, Any]:
        return await self._request("GET", "/me")

    async def health_check(self) -> bool:
        try:
            await self.get_me()
            return True
        except Exception as e:
            logger.warning(f"[figma] Health check failed: {e}")
            return False

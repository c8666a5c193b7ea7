"""
Notion API Client for Discubot.

Notion plays two roles:
- Source: page comments (discussions) are read and replied to
- Destination: tasks are created as pages in a database

Authentication:
    Internal integration token (``secret_...`` or ``ntn_...``) sent as a
    Bearer header, together with the pinned ``Notion-Version`` header.

Usage:
    async with NotionClient(NotionConfig(api_key="ntn_...")) as client:
        page = await client.create_page(
            database_id="...",
            properties={"Name": {"title": [{"text": {"content": "Ship it"}}]}},
            children=[],
        )
        print(page["url"])

API Reference:
    https://developers.notion.com/reference
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from discubot.integrations.base import IntegrationClient, IntegrationConfig

logger = logging.getLogger(__name__)

NOTION_VERSION = "2022-06-28"


@dataclass(frozen=True, slots=True)
class NotionConfig(IntegrationConfig):
    """Configuration for Notion client."""

    api_key: str = ""
    base_url: str = "https://api.notion.com/v1"
    notion_version: str = NOTION_VERSION

    def __post_init__(self):
        if not self.api_key:
            raise ValueError("Notion integration token is required")


class NotionClient(IntegrationClient):
    """
    Async client for the Notion REST API.

    Only the comment, page, database and user endpoints used by the
    source adapter and the task creator are wrapped.
    """

    def __init__(self, config: NotionConfig, **kwargs: Any):
        super().__init__(config, **kwargs)
        self._config: NotionConfig = config

    @property
    def name(self) -> str:
        return "notion"

    def _get_auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.api_key}",
            "Notion-Version": self._config.notion_version,
        }

    # =========================================================================
    # Comments
    # =========================================================================

    async def retrieve_comment(self, comment_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/comments/{comment_id}")

    async def list_comments(
        self,
        block_id: str,
        *,
        start_cursor: str | None = None,
        page_size: int = 100,
    ) -> dict[str, Any]:
        """One page of comments on a page or block."""
        params: dict[str, Any] = {"block_id": block_id, "page_size": page_size}
        if start_cursor:
            params["start_cursor"] = start_cursor
        return await self._request("GET", "/comments", params=params)

    async def list_all_comments(self, block_id: str) -> list[dict[str, Any]]:
        """Every comment on a page or block, following ``next_cursor``."""
        comments: list[dict[str, Any]] = []
        cursor: str | None = None

        while True:
            page = await self.list_comments(block_id, start_cursor=cursor)
            comments.extend(page.get("results") or [])

            cursor = page.get("next_cursor")
            if not page.get("has_more") or not cursor:
                break

        return comments

    async def create_comment(self, discussion_id: str, text: str) -> dict[str, Any]:
        """Reply inside an existing discussion."""
        body = {
            "discussion_id": discussion_id,
            "rich_text": [{"type": "text", "text": {"content": text[:2000]}}],
        }
        return await self._request("POST", "/comments", json=body)

    # =========================================================================
    # Pages and databases
    # =========================================================================

    async def create_page(
        self,
        database_id: str,
        properties: dict[str, Any],
        children: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """
        Create a page in a database.

        Returns:
            The created page object (``id`` and ``url`` among others)
        """
        body: dict[str, Any] = {
            "parent": {"database_id": database_id},
            "properties": properties,
        }
        if children:
            # Notion accepts at most 100 children per request
            body["children"] = children[:100]
        page = await self._request("POST", "/pages", json=body)
        logger.info(f"[notion] Created page {page.get('id')} in database {database_id}")
        return page

    async def retrieve_database(self, database_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/databases/{database_id}")

    # =========================================================================
    # Users
    # =========================================================================

    async def users_me(self) -> dict[str, Any]:
        return await self._request("GET", "/users/me")

    async def health_check(self) -> bool:
        try:
            await self.users_me()
            return True
        except Exception as e:
            logger.warning(f"[notion] Health check failed: {e}")
            return False

"""
Notion Integration for Discubot.

Usage:
    from discubot.integrations.notion import NotionClient, NotionConfig

    client = NotionClient(NotionConfig(api_key="ntn_..."))
    comments = await client.list_all_comments(page_id)
"""

from discubot.integrations.notion.client import NOTION_VERSION, NotionClient, NotionConfig

__all__ = [
    "NOTION_VERSION",
    "NotionClient",
    "NotionConfig",
]

"""Inbound webhook routers, one per source."""

from .figma import router as figma_router
from .notion import router as notion_router
from .slack import router as slack_router

__all__ = [
    "figma_router",
    "notion_router",
    "slack_router",
]

"""HTTP routers for the Discubot API."""

from .discussions import router as discussions_router
from .webhooks import figma_router, notion_router, slack_router

__all__ = [
    "discussions_router",
    "figma_router",
    "notion_router",
    "slack_router",
]

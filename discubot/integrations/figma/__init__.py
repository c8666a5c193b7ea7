"""
Figma Integration for Discubot.

Usage:
    from discubot.integrations.figma import FigmaClient, FigmaConfig

    client = FigmaClient(FigmaConfig(api_key="figd_..."))
    comments = await client.get_comments("AbC123xyz")
"""

from discubot.integrations.figma.client import FigmaClient, FigmaConfig

__all__ = [
    "FigmaClient",
    "FigmaConfig",
]

"""
Discubot Integrations.

Async HTTP clients for the external services Discubot talks to. Every
client builds on ``IntegrationClient`` (httpx, retry of transient failures,
status-code to error mapping).

Usage:
    from discubot.integrations.slack import SlackClient, SlackConfig

    async with SlackClient(SlackConfig(api_key=token)) as client:
        messages = await client.fetch_replies(channel, ts)
"""

from discubot.integrations.base import (
    AuthenticationError,
    IntegrationClient,
    IntegrationConfig,
    IntegrationError,
    NotFoundError,
    RateLimitError,
    ValidationError,
    error_for_response,
    parse_retry_after,
)

__all__ = [
    "AuthenticationError",
    "IntegrationClient",
    "IntegrationConfig",
    "IntegrationError",
    "NotFoundError",
    "RateLimitError",
    "ValidationError",
    "error_for_response",
    "parse_retry_after",
]

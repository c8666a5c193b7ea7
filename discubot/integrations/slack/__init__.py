"""
Slack Integration for Discubot.

Usage:
    from discubot.integrations.slack import SlackClient, SlackConfig

    client = SlackClient(SlackConfig(api_key="xoxb-..."))
    messages = await client.fetch_replies(channel="C123", ts="1700000000.000100")
"""

from discubot.integrations.slack.client import SlackAPIError, SlackClient, SlackConfig

__all__ = [
    "SlackAPIError",
    "SlackClient",
    "SlackConfig",
]

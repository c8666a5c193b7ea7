"""
Discubot - turns team discussions into tracked tasks.

Discubot ingests discussion events from chat threads (Slack), design-file
comments (Figma) and page-comment threads (Notion), asks a language model to
summarize them and extract actionable items, classifies each item into a
domain and creates the resulting tasks in one or more Notion databases.

Main building blocks:

- **Source Adapters**: normalize inbound events and fetch full threads
- **AI Analysis**: one model call per discussion for summary + tasks
- **Domain Router**: fan tasks out to outputs by domain filter
- **Task Creator**: write pages into Notion databases, rate limited
- **Processor**: the state machine tying everything together

Quick Start:
    >>> from discubot.adapters import get_adapter
    >>> from discubot.models import SourceType
    >>>
    >>> adapter = get_adapter(SourceType.SLACK)
    >>> parsed = await adapter.parse_incoming(slack_event)
    >>> result = await processor.process(parsed)
"""

__version__ = "0.1.0"

from discubot.errors import (
    ConfigurationError,
    ConflictError,
    DiscubotError,
    MalformedInputError,
    NotFoundError,
    ProcessingError,
    TransientError,
)
from discubot.models import (
    AIAnalysis,
    AISummary,
    DetectedTask,
    DiscussionThread,
    JobOutcome,
    ParsedDiscussion,
    ProcessingResult,
    SourceType,
    ThreadMessage,
)

__all__ = [
    "__version__",
    # Errors
    "ConfigurationError",
    "ConflictError",
    "DiscubotError",
    "MalformedInputError",
    "NotFoundError",
    "ProcessingError",
    "TransientError",
    # Models
    "AIAnalysis",
    "AISummary",
    "DetectedTask",
    "DiscussionThread",
    "JobOutcome",
    "ParsedDiscussion",
    "ProcessingResult",
    "SourceType",
    "ThreadMessage",
]

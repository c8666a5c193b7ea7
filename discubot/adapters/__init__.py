"""
Discubot Source Adapters.

One adapter per discussion source, all behind the SourceAdapter contract.

Usage:
    from discubot.adapters import get_adapter
    from discubot.models import SourceType

    adapter = get_adapter(SourceType.NOTION)
    thread = await adapter.fetch_thread("page-id:discussion-id", adapter_config)
"""

from .base import ConfigValidation, SourceAdapter, extract_title, split_thread_id, to_domain_error
from .figma import FigmaAdapter
from .notion import DEFAULT_TRIGGER_KEYWORD, NotionAdapter, check_for_trigger
from .registry import get_adapter, register_adapter, registered_source_types, reset_adapter_registry
from .slack import SlackAdapter

__all__ = [
    "DEFAULT_TRIGGER_KEYWORD",
    "ConfigValidation",
    "FigmaAdapter",
    "NotionAdapter",
    "SlackAdapter",
    "SourceAdapter",
    "check_for_trigger",
    "extract_title",
    "get_adapter",
    "register_adapter",
    "registered_source_types",
    "reset_adapter_registry",
    "split_thread_id",
    "to_domain_error",
]

"""
Source adapter registry.

Adapters are keyed by SourceType. The default set (Slack, Figma, Notion)
is created lazily on first lookup; tests swap implementations with
``register_adapter`` and restore defaults with ``reset_adapter_registry``.

Usage:
    adapter = get_adapter(SourceType.SLACK)
    parsed = await adapter.parse_incoming(payload)
"""

from __future__ import annotations

import logging

from discubot.errors import ConfigurationError
from discubot.models import SourceType

from .base import SourceAdapter

logger = logging.getLogger(__name__)

_adapters: dict[SourceType, SourceAdapter] = {}


def _default_adapters() -> dict[SourceType, SourceAdapter]:
    from .figma import FigmaAdapter
    from .notion import NotionAdapter
    from .slack import SlackAdapter

    return {
        SourceType.SLACK: SlackAdapter(),
        SourceType.FIGMA: FigmaAdapter(),
        SourceType.NOTION: NotionAdapter(),
    }


def get_adapter(source_type: SourceType | str) -> SourceAdapter:
    """
    Look up the adapter for a source kind.

    Raises:
        ConfigurationError: If the kind is unknown or has no adapter
    """
    try:
        kind = SourceType.parse(source_type)
    except ValueError as e:
        raise ConfigurationError(str(e), source="adapters") from e

    if not _adapters:
        _adapters.update(_default_adapters())

    adapter = _adapters.get(kind)
    if adapter is None:
        raise ConfigurationError(f"No adapter registered for source type: {kind.value}", source="adapters")
    return adapter


def register_adapter(adapter: SourceAdapter) -> None:
    """Register (or replace) the adapter for ``adapter.source_type``."""
    if not _adapters:
        _adapters.update(_default_adapters())
    _adapters[adapter.source_type] = adapter
    logger.debug(f"[adapters] Registered {adapter!r}")


def registered_source_types() -> list[SourceType]:
    if not _adapters:
        _adapters.update(_default_adapters())
    return list(_adapters)


def reset_adapter_registry() -> None:
    """Drop registered adapters; defaults are recreated on next lookup."""
    _adapters.clear()


__all__ = [
    "get_adapter",
    "register_adapter",
    "registered_source_types",
    "reset_adapter_registry",
]

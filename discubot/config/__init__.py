"""
Discubot Configuration

Flow, input, output and legacy source configuration, read from MongoDB
(or memory) and resolved per inbound discussion.
"""

from .schemas import (
    AdapterConfig,
    AppSettings,
    FieldMapping,
    Flow,
    FlowInput,
    FlowOutput,
    InputSourceMetadata,
    NotionOutputConfig,
    ResolvedConfig,
    SourceConfig,
)
from .service import (
    BaseConfigurationService,
    ConfigurationService,
    InMemoryConfigurationService,
    TTLCache,
)

__all__ = [
    "AdapterConfig",
    "AppSettings",
    "BaseConfigurationService",
    "ConfigurationService",
    "FieldMapping",
    "Flow",
    "FlowInput",
    "FlowOutput",
    "InMemoryConfigurationService",
    "InputSourceMetadata",
    "NotionOutputConfig",
    "ResolvedConfig",
    "SourceConfig",
    "TTLCache",
]

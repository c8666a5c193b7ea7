"""
Discubot services.

- AIAnalysisService: one model call per discussion (summary + tasks)
- NotionTaskCreator: writes tasks into Notion databases
- DiscussionProcessor: the processing state machine

Usage:
    processor = DiscussionProcessor(
        config_service, store, inflight, AIAnalysisService(provider), NotionTaskCreator()
    )
    result = await processor.process(parsed)
"""

from .ai import AIAnalysisService, build_analysis_prompt
from .processor import (
    DiscussionProcessor,
    build_confirmation_message,
    build_fallback_analysis,
    content_hash,
    is_retry_eligible,
)
from .tasks import (
    DEFAULT_CREATE_POLICY,
    NotionTaskCreator,
    build_task_blocks,
    build_task_properties,
    chunk_text,
    format_notion_property,
)

__all__ = [
    "DEFAULT_CREATE_POLICY",
    "AIAnalysisService",
    "DiscussionProcessor",
    "NotionTaskCreator",
    "build_analysis_prompt",
    "build_confirmation_message",
    "build_fallback_analysis",
    "build_task_blocks",
    "build_task_properties",
    "chunk_text",
    "content_hash",
    "format_notion_property",
    "is_retry_eligible",
]

"""
Notion Task Creator for Discubot.

Creates one page in a Notion database per (task, output) pair.

Page layout:
- "Name" title property (plus any properties from the output's field mapping)
- AI summary callout
- "Key Action Items" to-do list
- Participants paragraph
- Thread content
- Metadata bullets
- Deep link back to the source discussion

Notion allows roughly three requests per second per integration. Calls
sharing a token are spaced by a per-token rate limiter (200 ms by
default) and each ``pages.create`` is retried with exponential backoff.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

from discubot.config.schemas import FieldMapping, NotionOutputConfig
from discubot.errors import ConfigurationError
from discubot.integrations.notion import NotionClient, NotionConfig
from discubot.models import AISummary, CreatedTask, DetectedTask, DiscussionThread
from discubot.pipeline.ratelimit import RateLimiter
from discubot.pipeline.retry import RETRY_WITH_BACKOFF, RetryPolicy, retry_call

logger = logging.getLogger(__name__)

RICH_TEXT_LIMIT = 2000
MAX_CHILDREN = 100

DEFAULT_CREATE_POLICY = RETRY_WITH_BACKOFF


# =============================================================================
# Properties
# =============================================================================


def format_notion_property(value: Any, property_type: str) -> dict[str, Any] | None:
    """
    Format a value as a Notion property of ``property_type``.

    Unknown types fall back to rich_text. Returns None when the value
    cannot be expressed (e.g. people without ids).
    """
    if property_type == "title":
        return {"title": [{"text": {"content": str(value)[:RICH_TEXT_LIMIT]}}]}
    if property_type == "number":
        try:
            return {"number": float(value)}
        except (TypeError, ValueError):
            return {"number": 0}
    if property_type == "select":
        return {"select": {"name": str(value)}}
    if property_type == "status":
        return {"status": {"name": str(value)}}
    if property_type == "multi_select":
        values = value if isinstance(value, (list, tuple)) else [value]
        return {"multi_select": [{"name": str(v)} for v in values if v]}
    if property_type == "date":
        start = value.isoformat() if isinstance(value, datetime) else str(value)
        return {"date": {"start": start}}
    if property_type == "checkbox":
        return {"checkbox": bool(value)}
    if property_type in ("url", "email", "phone_number"):
        return {property_type: str(value)}
    if property_type == "people":
        ids = value if isinstance(value, (list, tuple)) else [value]
        valid = [str(i) for i in ids if i]
        if not valid:
            return None
        return {"people": [{"object": "user", "id": i} for i in valid]}
    return {"rich_text": [{"text": {"content": str(value)[:RICH_TEXT_LIMIT]}}]}


def _map_value(value: Any, mapping: FieldMapping) -> Any:
    if not mapping.value_map:
        return value
    lowered = {k.lower(): v for k, v in mapping.value_map.items()}
    if isinstance(value, (list, tuple)):
        return [lowered.get(str(v).lower(), v) for v in value]
    return lowered.get(str(value).lower(), value)


def build_task_properties(
    task: DetectedTask,
    field_mapping: dict[str, FieldMapping] | None = None,
) -> dict[str, Any]:
    """
    Title property plus any mapped AI fields.

    For ``people`` properties the value map translates source handles into
    Notion user ids; unmapped handles are skipped.
    """
    properties: dict[str, Any] = {
        "Name": {"title": [{"text": {"content": task.title[:RICH_TEXT_LIMIT]}}]},
    }
    if not field_mapping:
        return properties

    ai_values: dict[str, Any] = {
        "priority": task.priority.value,
        "type": task.task_type,
        "assignee": task.assignee,
        "tags": list(task.tags) or None,
        "domain": task.domain,
    }

    for ai_field, value in ai_values.items():
        mapping = field_mapping.get(ai_field)
        if value is None or mapping is None or not mapping.notion_property:
            continue

        if mapping.property_type == "people":
            user_id = mapping.value_map.get(str(value))
            if not user_id:
                logger.warning(f"[notion] No Notion user mapped for {ai_field}={value!r}")
                continue
            value = user_id
        else:
            value = _map_value(value, mapping)

        formatted = format_notion_property(value, mapping.property_type)
        if formatted is not None:
            properties[mapping.notion_property] = formatted
            logger.debug(f"[notion] Mapped {ai_field} -> {mapping.notion_property} ({mapping.property_type})")

    return properties


# =============================================================================
# Blocks
# =============================================================================


def _text(content: str, **extra: Any) -> dict[str, Any]:
    part: dict[str, Any] = {"type": "text", "text": {"content": content[:RICH_TEXT_LIMIT]}}
    part.update(extra)
    return part


def _block(block_type: str, rich_text: list[dict[str, Any]] | None = None, **fields: Any) -> dict[str, Any]:
    body: dict[str, Any] = dict(fields)
    if rich_text is not None:
        body["rich_text"] = rich_text
    return {"object": "block", "type": block_type, block_type: body}


def _divider() -> dict[str, Any]:
    return {"object": "block", "type": "divider", "divider": {}}


def chunk_text(text: str, size: int = RICH_TEXT_LIMIT) -> list[str]:
    """Split text into pieces Notion accepts as one rich text object."""
    return [text[i : i + size] for i in range(0, len(text), size)] or [""]


def build_task_blocks(
    task: DetectedTask,
    thread: DiscussionThread,
    summary: AISummary,
    *,
    source_type: str,
    source_url: str | None,
    confidence: float | None = None,
    created_at: datetime | None = None,
) -> list[dict[str, Any]]:
    """Page body for one task."""
    blocks: list[dict[str, Any]] = []

    if summary.summary:
        blocks.append(_block("callout", [_text(f"AI Summary: {summary.summary}")], icon={"emoji": "🤖"}))

    action_items = list(dict.fromkeys([*summary.key_points, *task.action_items]))
    if action_items:
        blocks.append(_block("heading_3", [_text("📋 Key Action Items")]))
        blocks.extend(_block("to_do", [_text(item)], checked=False) for item in action_items)

    participants = sorted(thread.participants)
    if participants:
        label = ", ".join(f"@{p}" for p in participants)
        blocks.append(_block("paragraph", [_text(f"👥 Participants: {label}")]))

    blocks.append(_divider())
    blocks.append(_block("heading_2", [_text("Thread Content")]))
    if task.description:
        blocks.append(_block("paragraph", [_text(task.description)]))
    content_at = len(blocks)

    blocks.append(_divider())
    blocks.append(_block("heading_2", [_text("Metadata")]))

    score = summary.confidence if confidence is None else confidence
    timestamp = (created_at or datetime.now(UTC)).strftime("%Y-%m-%d %H:%M UTC")
    metadata = [
        f"Source: {source_type}",
        f"Thread ID: {thread.id}",
        f"Thread Size: {thread.message_count} messages",
        f"Created By: @{thread.root_message.author_handle}",
        f"Priority: {task.priority.value}",
        f"Sentiment: {summary.sentiment or 'neutral'}",
        f"Confidence: {round(score * 100)}%",
        f"Timestamp: {timestamp}",
    ]
    if task.assignee:
        metadata.append(f"Assignee: @{task.assignee}")
    if task.tags:
        metadata.append(f"Tags: {', '.join(task.tags)}")
    if task.domain:
        metadata.append(f"Domain: {task.domain}")
    blocks.extend(_block("bulleted_list_item", [_text(item)]) for item in metadata)

    if source_url:
        blocks.append(_divider())
        link = _text(
            f"View Discussion in {source_type}",
            annotations={"bold": True, "color": "blue"},
        )
        link["text"]["link"] = {"url": source_url}
        blocks.append(_block("paragraph", [_text("🔗 "), link]))

    # Thread content fills whatever room Notion's per-request child limit leaves
    room = max(MAX_CHILDREN - len(blocks), 1)
    chunks = chunk_text(thread.transcript())
    if len(chunks) > room:
        chunks = chunks[: room - 1] + ["... (thread truncated)"] if room > 1 else chunks[:1]
    blocks[content_at:content_at] = [_block("paragraph", [_text(chunk)]) for chunk in chunks]
    return blocks


# =============================================================================
# Creator
# =============================================================================


def _token_key(token: str) -> str:
    return "notion:" + hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]


class NotionTaskCreator:
    """
    Writes detected tasks into Notion databases.

    Example:
        creator = NotionTaskCreator()
        created = await creator.create_task(
            task, thread, analysis.summary, output.output_config,
            source_type="Slack", source_url=parsed.source_url,
        )
        print(created.url)
    """

    def __init__(
        self,
        client_factory: Callable[[str], NotionClient] | None = None,
        *,
        min_interval: float = 0.2,
        retry_policy: RetryPolicy | None = None,
        limiter: RateLimiter | None = None,
    ):
        """
        Args:
            client_factory: Builds a client for a token (clients must not retry)
            min_interval: Seconds between calls sharing a token
            retry_policy: Policy for ``pages.create``
            limiter: Shared limiter; one is created from ``min_interval`` otherwise
        """
        self._client_factory = client_factory or (
            lambda token: NotionClient(NotionConfig(api_key=token, max_retries=0))
        )
        self._retry_policy = retry_policy or DEFAULT_CREATE_POLICY
        self._limiter = limiter or RateLimiter.min_interval(min_interval)

    def _require_token(self, output_config: NotionOutputConfig) -> str:
        token = output_config.token
        if not token:
            raise ConfigurationError("Notion output has no token configured", source="notion")
        if not output_config.database_id:
            raise ConfigurationError("Notion output has no database ID configured", source="notion")
        return token

    async def create_task(
        self,
        task: DetectedTask,
        thread: DiscussionThread,
        summary: AISummary,
        output_config: NotionOutputConfig,
        *,
        source_type: str,
        source_url: str | None = None,
        analysis_confidence: float | None = None,
    ) -> CreatedTask:
        """
        Create one page.

        Raises:
            ConfigurationError: Output lacks a token or database id
            DiscubotError: Final creation error after retries
        """
        token = self._require_token(output_config)
        properties = build_task_properties(task, output_config.field_mapping)
        children = build_task_blocks(
            task,
            thread,
            summary,
            source_type=source_type,
            source_url=source_url,
            confidence=analysis_confidence,
        )
        key = _token_key(token)

        async with self._client_factory(token) as client:

            async def create_page() -> dict[str, Any]:
                await self._limiter.wait(key)
                return await client.create_page(output_config.database_id, properties, children)

            page = await retry_call(
                create_page,
                self._retry_policy,
                operation_name=f"[notion] create page '{task.title[:40]}'",
            )

        return CreatedTask(id=page["id"], url=page.get("url") or "")

    async def create_tasks(
        self,
        tasks: Sequence[DetectedTask],
        thread: DiscussionThread,
        summary: AISummary,
        output_config: NotionOutputConfig,
        **kwargs: Any,
    ) -> list[CreatedTask]:
        """
        Create several pages in order, stopping at the first failure.

        Spacing between calls comes from the shared limiter.
        """
        created: list[CreatedTask] = []
        for index, task in enumerate(tasks, start=1):
            result = await self.create_task(task, thread, summary, output_config, **kwargs)
            created.append(result)
            logger.info(f"[notion] Created task {index}/{len(tasks)}: {result.id}")
        return created

    async def test_connection(self, output_config: NotionOutputConfig) -> bool:
        """Whether the token can read the target database."""
        try:
            token = self._require_token(output_config)
            async with self._client_factory(token) as client:
                database = await client.retrieve_database(output_config.database_id)
            title = "".join(t.get("plain_text", "") for t in database.get("title") or []) or "Untitled"
            logger.info(f"[notion] Connection OK for database {output_config.database_id} ({title})")
            return True
        except Exception as e:
            logger.error(f"[notion] Connection test failed: {e}")
            return False


__all__ = [
    "DEFAULT_CREATE_POLICY",
    "NotionTaskCreator",
    "build_task_blocks",
    "build_task_properties",
    "chunk_text",
    "format_notion_property",
]

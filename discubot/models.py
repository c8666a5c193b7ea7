"""
Core data model for Discubot.

Immutable value objects that flow between adapters, the AI service, the
router, the task creator and the processor. Persistence records live in
``discubot.store.schemas``; configuration in ``discubot.config.schemas``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def _utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# =============================================================================
# Enums
# =============================================================================


class SourceType(str, Enum):
    """Closed set of discussion sources."""

    SLACK = "slack"
    FIGMA = "figma"
    NOTION = "notion"

    @classmethod
    def parse(cls, value: str | SourceType) -> SourceType:
        """Parse a source type, raising ValueError for unknown kinds."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown source type: {value!r}") from None

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class DiscussionStatus(str, Enum):
    """Discussion lifecycle, also mirrored to the source as a status marker."""

    PENDING = "pending"
    PROCESSING = "processing"
    ANALYZED = "analyzed"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"

    @property
    def is_terminal(self) -> bool:
        return self in (DiscussionStatus.COMPLETED, DiscussionStatus.FAILED)


class ProcessingState(str, Enum):
    """States of one processor run; stored as the Job stage."""

    RECEIVED = "received"
    THREAD_RESOLVED = "thread_resolved"
    ANALYZED = "analyzed"
    ROUTED = "routed"
    CREATING_OUTPUTS = "creating_outputs"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"


class JobOutcome(str, Enum):
    """Terminal outcome of a processor run."""

    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"

    @classmethod
    def from_pairs(cls, succeeded: int, failed: int) -> JobOutcome:
        """
        Derive the outcome from per-pair results.

        No pairs at all (no tasks detected) counts as completed.
        """
        if failed == 0:
            return cls.COMPLETED
        if succeeded == 0:
            return cls.FAILED
        return cls.PARTIALLY_COMPLETED


class TaskPriority(str, Enum):
    """Task priority levels understood by destination boards."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_string(cls, value: Any) -> TaskPriority:
        """Convert model output to a priority; anything unrecognised is medium."""
        if not value:
            return cls.MEDIUM
        mapping = {
            "low": cls.LOW,
            "medium": cls.MEDIUM,
            "normal": cls.MEDIUM,
            "high": cls.HIGH,
            "urgent": cls.URGENT,
            "critical": cls.URGENT,
        }
        return mapping.get(str(value).strip().lower(), cls.MEDIUM)


# =============================================================================
# Discussions and threads
# =============================================================================


@dataclass(frozen=True, kw_only=True, slots=True)
class ParsedDiscussion:
    """
    A normalized inbound discussion event.

    Created by a source adapter from a raw payload and consumed once by
    the processor. ``(team_id, source_thread_id)`` identifies the discussion.
    """

    source_type: SourceType
    source_thread_id: str
    source_url: str
    team_id: str
    author_handle: str
    title: str
    content: str
    participants: frozenset[str] = frozenset()
    timestamp: datetime = field(default_factory=_utc_now)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def discussion_key(self) -> str:
        """Key used by the idempotency gate."""
        return f"{self.team_id}:{self.source_type.value}:{self.source_thread_id}"

    def missing_fields(self) -> list[str]:
        """Names of required fields that are empty."""
        required = (
            "source_thread_id",
            "source_url",
            "team_id",
            "author_handle",
            "title",
            "content",
        )
        return [name for name in required if not getattr(self, name)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_type": self.source_type.value,
            "source_thread_id": self.source_thread_id,
            "source_url": self.source_url,
            "team_id": self.team_id,
            "author_handle": self.author_handle,
            "title": self.title,
            "content": self.content,
            "participants": sorted(self.participants),
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


@dataclass(frozen=True, slots=True)
class ThreadMessage:
    """One message of a discussion thread."""

    id: str
    author_handle: str
    content: str
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "author_handle": self.author_handle,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ThreadMessage:
        return cls(
            id=data["id"],
            author_handle=data.get("author_handle", ""),
            content=data.get("content", ""),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass(frozen=True, kw_only=True, slots=True)
class DiscussionThread:
    """
    A full thread fetched from the source.

    Messages are chronological with the root first. Threads are fetched
    fresh for every processing attempt and never cached.
    """

    id: str
    root_message: ThreadMessage
    replies: tuple[ThreadMessage, ...] = ()
    participants: frozenset[str] = frozenset()
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def messages(self) -> tuple[ThreadMessage, ...]:
        return (self.root_message, *self.replies)

    @property
    def message_count(self) -> int:
        return 1 + len(self.replies)

    def transcript(self) -> str:
        """Render the thread as plain text for prompts and page bodies."""
        lines = [f"Root message by {self.root_message.author_handle}:", self.root_message.content]
        for reply in self.replies:
            lines.append("")
            lines.append(f"Reply by {reply.author_handle}:")
            lines.append(reply.content)
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "root_message": self.root_message.to_dict(),
            "replies": [r.to_dict() for r in self.replies],
            "participants": sorted(self.participants),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiscussionThread:
        """Rebuild a stored snapshot (see ``to_dict``)."""
        return cls(
            id=data["id"],
            root_message=ThreadMessage.from_dict(data["root_message"]),
            replies=tuple(ThreadMessage.from_dict(r) for r in data.get("replies", [])),
            participants=frozenset(data.get("participants", [])),
            metadata=dict(data.get("metadata") or {}),
        )

    @classmethod
    def from_messages(
        cls,
        thread_id: str,
        messages: list[ThreadMessage],
        metadata: dict[str, Any] | None = None,
    ) -> DiscussionThread:
        """
        Build a thread from unordered messages.

        Sorting is stable on (timestamp, id) so repeated fetches of an
        unchanged thread produce identical ordering.
        """
        if not messages:
            raise ValueError("A thread needs at least one message")
        ordered = sorted(messages, key=lambda m: (m.timestamp, m.id))
        return cls(
            id=thread_id,
            root_message=ordered[0],
            replies=tuple(ordered[1:]),
            participants=frozenset(m.author_handle for m in ordered if m.author_handle),
            metadata=metadata or {},
        )

    @classmethod
    def from_discussion(cls, parsed: ParsedDiscussion) -> DiscussionThread:
        """Single-message thread built from the inbound event itself."""
        root = ThreadMessage(
            id=parsed.source_thread_id,
            author_handle=parsed.author_handle,
            content=parsed.content,
            timestamp=parsed.timestamp,
        )
        participants = set(parsed.participants) | {parsed.author_handle}
        return cls(
            id=parsed.source_thread_id,
            root_message=root,
            participants=frozenset(p for p in participants if p),
            metadata=dict(parsed.metadata),
        )


# =============================================================================
# AI analysis
# =============================================================================


@dataclass(frozen=True, slots=True)
class AISummary:
    """Summary of a discussion produced by the language model."""

    summary: str
    key_points: tuple[str, ...] = ()
    sentiment: str = "neutral"
    confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "key_points": list(self.key_points),
            "sentiment": self.sentiment,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AISummary:
        return cls(
            summary=data.get("summary", ""),
            key_points=tuple(data.get("key_points", ())),
            sentiment=data.get("sentiment", "neutral"),
            confidence=data.get("confidence", 0.0),
        )


@dataclass(frozen=True, kw_only=True, slots=True)
class DetectedTask:
    """An actionable item detected in a discussion."""

    title: str
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee: str | None = None
    tags: tuple[str, ...] = ()
    domain: str | None = None
    action_items: tuple[str, ...] = ()
    task_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "assignee": self.assignee,
            "tags": list(self.tags),
            "domain": self.domain,
            "action_items": list(self.action_items),
            "type": self.task_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DetectedTask:
        return cls(
            title=data["title"],
            description=data.get("description", ""),
            priority=TaskPriority.from_string(data.get("priority")),
            assignee=data.get("assignee"),
            tags=tuple(data.get("tags", ())),
            domain=data.get("domain"),
            action_items=tuple(data.get("action_items", ())),
            task_type=data.get("type"),
        )


@dataclass(frozen=True, kw_only=True, slots=True)
class AIAnalysis:
    """Result of the single model call made per discussion."""

    summary: AISummary
    tasks: tuple[DetectedTask, ...] = ()
    confidence: float = 0.0
    processing_time_ms: float = 0.0
    cached: bool = False
    model: str = ""

    @property
    def is_multi_task(self) -> bool:
        return len(self.tasks) > 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "tasks": [t.to_dict() for t in self.tasks],
            "is_multi_task": self.is_multi_task,
            "confidence": self.confidence,
            "processing_time_ms": self.processing_time_ms,
            "cached": self.cached,
            "model": self.model,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AIAnalysis:
        """Rebuild a stored analysis; the result is marked as cached."""
        return cls(
            summary=AISummary.from_dict(data["summary"]),
            tasks=tuple(DetectedTask.from_dict(t) for t in data.get("tasks", [])),
            confidence=data.get("confidence", 0.0),
            processing_time_ms=data.get("processing_time_ms", 0.0),
            cached=True,
            model=data.get("model", ""),
        )


# =============================================================================
# Outputs and results
# =============================================================================


@dataclass(frozen=True, slots=True)
class CreatedTask:
    """Identifier and URL of an item created in a destination board."""

    id: str
    url: str


@dataclass(frozen=True, kw_only=True, slots=True)
class PairOutcome:
    """Outcome of one (task, output) creation attempt."""

    task_index: int
    output_id: str
    output_name: str = ""
    success: bool
    notion_page_id: str | None = None
    url: str | None = None
    error: str | None = None
    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_index": self.task_index,
            "output_id": self.output_id,
            "output_name": self.output_name,
            "success": self.success,
            "notion_page_id": self.notion_page_id,
            "url": self.url,
            "error": self.error,
            "retryable": self.retryable,
        }


@dataclass(kw_only=True)
class ProcessingResult:
    """
    Result returned by the processor.

    ``duplicate`` is set when the idempotency gate short-circuited and the
    result describes an earlier (or still running) run.
    """

    discussion_id: str
    job_id: str | None = None
    outcome: JobOutcome | None = None
    analysis: AIAnalysis | None = None
    pair_outcomes: list[PairOutcome] = field(default_factory=list)
    processing_time_ms: float = 0.0
    duplicate: bool = False

    @property
    def created_tasks(self) -> list[CreatedTask]:
        return [
            CreatedTask(id=p.notion_page_id or "", url=p.url or "")
            for p in self.pair_outcomes
            if p.success
        ]

    @property
    def failed_pairs(self) -> list[PairOutcome]:
        return [p for p in self.pair_outcomes if not p.success]

    @property
    def is_multi_task(self) -> bool:
        return bool(self.analysis and self.analysis.is_multi_task)

    def to_dict(self) -> dict[str, Any]:
        return {
            "discussion_id": self.discussion_id,
            "job_id": self.job_id,
            "outcome": self.outcome.value if self.outcome else None,
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "pair_outcomes": [p.to_dict() for p in self.pair_outcomes],
            "processing_time_ms": self.processing_time_ms,
            "is_multi_task": self.is_multi_task,
            "duplicate": self.duplicate,
        }


__all__ = [
    "AIAnalysis",
    "AISummary",
    "CreatedTask",
    "DetectedTask",
    "DiscussionStatus",
    "DiscussionThread",
    "JobOutcome",
    "PairOutcome",
    "ParsedDiscussion",
    "ProcessingResult",
    "ProcessingState",
    "SourceType",
    "TaskPriority",
    "ThreadMessage",
]

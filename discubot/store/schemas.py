"""
Persistence records for Discubot.

The durable audit trail of the pipeline:

- DiscussionRecord: one per (team_id, source_thread_id)
- JobRecord: one per processing run of a discussion
- TaskRecord: one per successfully created (task, output) pair

Records are created by the processor only; adapters never touch them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from discubot.models import DiscussionStatus, SourceType


def _utc_now() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return uuid4().hex


class DiscussionRecord(BaseModel):
    """A discussion being (or having been) processed."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    team_id: str
    source_type: SourceType
    source_thread_id: str
    source_url: str = ""
    config_id: str | None = Field(None, description="Flow or legacy config that owned the run")
    title: str = ""
    content: str = ""
    content_hash: str = ""
    author_handle: str = ""
    participants: list[str] = Field(default_factory=list)
    status: DiscussionStatus = DiscussionStatus.PENDING

    # Thread snapshot
    thread_data: dict[str, Any] | None = None
    total_messages: int = 0

    # AI output
    ai_summary: str | None = None
    ai_key_points: list[str] = Field(default_factory=list)
    ai_tasks: list[dict[str, Any]] = Field(default_factory=list)
    ai_analysis: dict[str, Any] | None = Field(None, description="Full analysis, replayed by retries")
    is_multi_task: bool = False

    sync_job_id: str | None = None
    notion_task_ids: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None

    processed_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class JobRecord(BaseModel):
    """
    One processing run.

    ``stage`` holds the processing state reached; ``status`` is the
    coarse lifecycle (pending, processing, completed, partially_completed,
    failed, retrying).
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    team_id: str
    discussion_id: str
    config_id: str | None = None
    status: str = "pending"
    stage: str = "ingestion"
    attempts: int = 0
    max_attempts: int = 3
    error: str | None = None
    error_stage: str | None = None
    error_kind: str | None = None
    retryable: bool | None = None
    started_at: datetime = Field(default_factory=_utc_now)
    completed_at: datetime | None = None
    processing_time_ms: float | None = None
    task_ids: list[str] = Field(default_factory=list)
    pair_outcomes: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class TaskRecord(BaseModel):
    """A destination item created for one (task, output) pair."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    discussion_id: str
    sync_job_id: str
    output_id: str
    notion_page_id: str
    notion_page_url: str = ""
    title: str
    description: str = ""
    status: str = "todo"
    priority: str = "medium"
    assignee: str | None = None
    domain: str | None = None
    summary: str = ""
    source_url: str = ""
    is_multi_task_child: bool = False
    task_index: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utc_now)


__all__ = [
    "DiscussionRecord",
    "JobRecord",
    "TaskRecord",
    "new_id",
]

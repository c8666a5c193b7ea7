"""
In-memory state stores.

Used by tests and single-process local runs. Every operation completes
without awaiting, so check-and-set sequences are atomic on one event loop.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Any

from .schemas import DiscussionRecord, JobRecord, TaskRecord


class InMemoryDiscussionStore:
    """Dict-backed DiscussionStore."""

    def __init__(self) -> None:
        self.discussions: dict[str, DiscussionRecord] = {}
        self.jobs: dict[str, JobRecord] = {}
        self.tasks: dict[str, TaskRecord] = {}

    async def find_discussion(self, team_id: str, source_thread_id: str) -> DiscussionRecord | None:
        for record in self.discussions.values():
            if record.team_id == team_id and record.source_thread_id == source_thread_id:
                return record.model_copy(deep=True)
        return None

    async def get_discussion(self, discussion_id: str) -> DiscussionRecord | None:
        record = self.discussions.get(discussion_id)
        return record.model_copy(deep=True) if record else None

    async def create_discussion(self, record: DiscussionRecord) -> DiscussionRecord:
        existing = await self.find_discussion(record.team_id, record.source_thread_id)
        if existing is not None:
            raise ValueError(
                f"Discussion already exists for {record.team_id}/{record.source_thread_id}"
            )
        self.discussions[record.id] = record.model_copy(deep=True)
        return record

    async def update_discussion(self, discussion_id: str, **fields: Any) -> DiscussionRecord | None:
        record = self.discussions.get(discussion_id)
        if record is None:
            return None
        fields.setdefault("updated_at", datetime.now(UTC))
        updated = record.model_copy(update=fields, deep=True)
        self.discussions[discussion_id] = updated
        return updated.model_copy(deep=True)

    async def create_job(self, job: JobRecord) -> JobRecord:
        self.jobs[job.id] = job.model_copy(deep=True)
        return job

    async def update_job(self, job_id: str, **fields: Any) -> JobRecord | None:
        job = self.jobs.get(job_id)
        if job is None:
            return None
        updated = job.model_copy(update=fields, deep=True)
        self.jobs[job_id] = updated
        return updated.model_copy(deep=True)

    async def get_job(self, job_id: str) -> JobRecord | None:
        job = self.jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def list_jobs(self, discussion_id: str) -> list[JobRecord]:
        return [
            j.model_copy(deep=True)
            for j in sorted(self.jobs.values(), key=lambda j: j.started_at)
            if j.discussion_id == discussion_id
        ]

    async def create_task(self, task: TaskRecord) -> TaskRecord:
        self.tasks[task.id] = task.model_copy(deep=True)
        return task

    async def list_tasks(self, discussion_id: str) -> list[TaskRecord]:
        return [
            t.model_copy(deep=True)
            for t in self.tasks.values()
            if t.discussion_id == discussion_id
        ]


class InMemoryInFlightRegistry:
    """
    Dict-backed InFlightRegistry.

    Markers are ``key -> (owner, expires_at)`` on the monotonic clock.
    """

    def __init__(self) -> None:
        self._markers: dict[str, tuple[str, float]] = {}

    async def acquire(self, key: str, owner: str, ttl: float) -> bool:
        now = time.monotonic()
        current = self._markers.get(key)
        if current is not None and current[1] > now and current[0] != owner:
            return False
        self._markers[key] = (owner, now + ttl)
        return True

    async def release(self, key: str, owner: str) -> None:
        current = self._markers.get(key)
        if current is not None and current[0] == owner:
            del self._markers[key]

    async def is_held(self, key: str) -> bool:
        current = self._markers.get(key)
        return current is not None and current[1] > time.monotonic()

    def __len__(self) -> int:
        return len(self._markers)


__all__ = [
    "InMemoryDiscussionStore",
    "InMemoryInFlightRegistry",
]

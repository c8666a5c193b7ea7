"""
State store interfaces for Discubot.

Two seams are injected into the processor:

- DiscussionStore: keyed record store for discussions, jobs and tasks
- InFlightRegistry: TTL markers guarding one run per discussion key

Markers older than their TTL count as abandoned (e.g. the process
crashed mid-run) and may be taken over by a new run.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from .schemas import DiscussionRecord, JobRecord, TaskRecord


@runtime_checkable
class DiscussionStore(Protocol):
    """Persistence boundary for the processor."""

    async def find_discussion(self, team_id: str, source_thread_id: str) -> DiscussionRecord | None:
        ...

    async def get_discussion(self, discussion_id: str) -> DiscussionRecord | None:
        ...

    async def create_discussion(self, record: DiscussionRecord) -> DiscussionRecord:
        ...

    async def update_discussion(self, discussion_id: str, **fields: Any) -> DiscussionRecord | None:
        ...

    async def create_job(self, job: JobRecord) -> JobRecord:
        ...

    async def update_job(self, job_id: str, **fields: Any) -> JobRecord | None:
        ...

    async def get_job(self, job_id: str) -> JobRecord | None:
        ...

    async def list_jobs(self, discussion_id: str) -> list[JobRecord]:
        ...

    async def create_task(self, task: TaskRecord) -> TaskRecord:
        ...

    async def list_tasks(self, discussion_id: str) -> list[TaskRecord]:
        ...


@runtime_checkable
class InFlightRegistry(Protocol):
    """Per-discussion in-flight markers with TTL."""

    async def acquire(self, key: str, owner: str, ttl: float) -> bool:
        """Take the marker unless a live one is held by someone else."""
        ...

    async def release(self, key: str, owner: str) -> None:
        """Drop the marker if ``owner`` still holds it."""
        ...

    async def is_held(self, key: str) -> bool:
        ...


__all__ = [
    "DiscussionStore",
    "InFlightRegistry",
]

"""
MongoDB state stores (motor).

Collections:
- discussions: DiscussionRecord, unique on (team_id, source_thread_id)
- sync_jobs: JobRecord
- tasks: TaskRecord
- inflight: in-flight markers, expired by a TTL index

The in-flight registry relies on the unique ``_id`` for mutual exclusion
between workers; a marker past ``expires_at`` may be taken over even
before MongoDB's TTL monitor removes it.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .schemas import DiscussionRecord, JobRecord, TaskRecord

logger = logging.getLogger(__name__)


class _MongoBase:
    """Connection handling shared by the Mongo stores."""

    def __init__(self, mongodb_url: str, database_name: str = "discubot"):
        self._mongodb_url = mongodb_url
        self._database_name = database_name
        self._client = None
        self._db = None

    async def connect(self) -> None:
        from motor.motor_asyncio import AsyncIOMotorClient

        self._client = AsyncIOMotorClient(self._mongodb_url, tz_aware=True)
        self._db = self._client[self._database_name]
        await self.ensure_indexes()
        logger.info(f"[store] Connected to MongoDB database: {self._database_name}")

    async def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None
            self._db = None

    async def _ensure_connected(self) -> None:
        if self._db is None:
            await self.connect()

    async def ensure_indexes(self) -> None:
        ...


class MongoDiscussionStore(_MongoBase):
    """DiscussionStore backed by MongoDB."""

    async def ensure_indexes(self) -> None:
        await self._db.discussions.create_index(
            [("team_id", ASCENDING), ("source_thread_id", ASCENDING)],
            unique=True,
        )
        await self._db.sync_jobs.create_index([("discussion_id", ASCENDING)])
        await self._db.tasks.create_index([("discussion_id", ASCENDING)])

    async def find_discussion(self, team_id: str, source_thread_id: str) -> DiscussionRecord | None:
        await self._ensure_connected()
        doc = await self._db.discussions.find_one(
            {"team_id": team_id, "source_thread_id": source_thread_id}
        )
        return DiscussionRecord(**_from_doc(doc)) if doc else None

    async def get_discussion(self, discussion_id: str) -> DiscussionRecord | None:
        await self._ensure_connected()
        doc = await self._db.discussions.find_one({"_id": discussion_id})
        return DiscussionRecord(**_from_doc(doc)) if doc else None

    async def create_discussion(self, record: DiscussionRecord) -> DiscussionRecord:
        await self._ensure_connected()
        await self._db.discussions.insert_one(_to_doc(record))
        return record

    async def update_discussion(self, discussion_id: str, **fields: Any) -> DiscussionRecord | None:
        await self._ensure_connected()
        fields.setdefault("updated_at", datetime.now(UTC))
        doc = await self._db.discussions.find_one_and_update(
            {"_id": discussion_id},
            {"$set": _dump_fields(DiscussionRecord, fields)},
            return_document=ReturnDocument.AFTER,
        )
        return DiscussionRecord(**_from_doc(doc)) if doc else None

    async def create_job(self, job: JobRecord) -> JobRecord:
        await self._ensure_connected()
        await self._db.sync_jobs.insert_one(_to_doc(job))
        return job

    async def update_job(self, job_id: str, **fields: Any) -> JobRecord | None:
        await self._ensure_connected()
        doc = await self._db.sync_jobs.find_one_and_update(
            {"_id": job_id},
            {"$set": _dump_fields(JobRecord, fields)},
            return_document=ReturnDocument.AFTER,
        )
        return JobRecord(**_from_doc(doc)) if doc else None

    async def get_job(self, job_id: str) -> JobRecord | None:
        await self._ensure_connected()
        doc = await self._db.sync_jobs.find_one({"_id": job_id})
        return JobRecord(**_from_doc(doc)) if doc else None

    async def list_jobs(self, discussion_id: str) -> list[JobRecord]:
        await self._ensure_connected()
        cursor = self._db.sync_jobs.find({"discussion_id": discussion_id}).sort("started_at", ASCENDING)
        return [JobRecord(**_from_doc(doc)) async for doc in cursor]

    async def create_task(self, task: TaskRecord) -> TaskRecord:
        await self._ensure_connected()
        await self._db.tasks.insert_one(_to_doc(task))
        return task

    async def list_tasks(self, discussion_id: str) -> list[TaskRecord]:
        await self._ensure_connected()
        cursor = self._db.tasks.find({"discussion_id": discussion_id}).sort("task_index", ASCENDING)
        return [TaskRecord(**_from_doc(doc)) async for doc in cursor]


class MongoInFlightRegistry(_MongoBase):
    """InFlightRegistry backed by a MongoDB collection."""

    async def ensure_indexes(self) -> None:
        await self._db.inflight.create_index("expires_at", expireAfterSeconds=0)

    async def acquire(self, key: str, owner: str, ttl: float) -> bool:
        await self._ensure_connected()
        now = datetime.now(UTC)
        marker = {"owner": owner, "acquired_at": now, "expires_at": now + timedelta(seconds=ttl)}

        try:
            await self._db.inflight.insert_one({"_id": key, **marker})
            return True
        except DuplicateKeyError:
            pass

        # Take over an expired marker, or refresh our own
        doc = await self._db.inflight.find_one_and_update(
            {"_id": key, "$or": [{"expires_at": {"$lte": now}}, {"owner": owner}]},
            {"$set": marker},
        )
        if doc is not None:
            logger.warning(f"[store] Took over in-flight marker {key} from {doc.get('owner')}")
            return True
        return False

    async def release(self, key: str, owner: str) -> None:
        await self._ensure_connected()
        await self._db.inflight.delete_one({"_id": key, "owner": owner})

    async def is_held(self, key: str) -> bool:
        await self._ensure_connected()
        doc = await self._db.inflight.find_one(
            {"_id": key, "expires_at": {"$gt": datetime.now(UTC)}}
        )
        return doc is not None


def _to_doc(record: Any) -> dict[str, Any]:
    data = record.model_dump(mode="python")
    data["_id"] = data["id"]
    return _encode(data)


def _from_doc(doc: dict[str, Any]) -> dict[str, Any]:
    data = dict(doc)
    data.pop("_id", None)
    return data


def _dump_fields(model: type, fields: dict[str, Any]) -> dict[str, Any]:
    dumped = {}
    for name, value in fields.items():
        if name not in model.model_fields:
            raise ValueError(f"Unknown field for {model.__name__}: {name}")
        dumped[name] = value
    return _encode(dumped)


def _encode(value: Any) -> Any:
    """Make enums storable by BSON."""
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_encode(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


__all__ = [
    "MongoDiscussionStore",
    "MongoInFlightRegistry",
]

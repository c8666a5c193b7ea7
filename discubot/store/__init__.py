"""
Discubot state stores.

- DiscussionStore / InFlightRegistry: interfaces injected into the processor
- InMemory*: dict-backed implementations for tests and local runs
- Mongo*: motor-backed implementations for deployments
"""

from .base import DiscussionStore, InFlightRegistry
from .memory import InMemoryDiscussionStore, InMemoryInFlightRegistry
from .mongo import MongoDiscussionStore, MongoInFlightRegistry
from .schemas import DiscussionRecord, JobRecord, TaskRecord, new_id

__all__ = [
    "DiscussionRecord",
    "DiscussionStore",
    "InFlightRegistry",
    "InMemoryDiscussionStore",
    "InMemoryInFlightRegistry",
    "JobRecord",
    "MongoDiscussionStore",
    "MongoInFlightRegistry",
    "TaskRecord",
    "new_id",
]

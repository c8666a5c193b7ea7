"""
Operational endpoints for stored discussions.

- POST /discussions/{id}/retry: retry a failed or partially completed discussion
  in the background (409 for any other state)
- GET  /discussions/{id}: the discussion record with its latest job and tasks
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, HTTPException

from discubot.errors import DiscubotError
from discubot.services import is_retry_eligible

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/discussions", tags=["discussions"])


async def _retry_in_background(discussion_id: str) -> None:
    from discubot.app.dependencies import get_processor

    try:
        result = await get_processor().retry_failed_discussion(discussion_id)
        outcome = result.outcome.value if result.outcome else "duplicate"
        logger.info(f"[discussions] Retry of {discussion_id} finished: {outcome}")
    except DiscubotError as e:
        logger.error(f"[discussions] Retry of {discussion_id} failed: {e}")
    except Exception as e:
        logger.error(f"[discussions] Retry of {discussion_id} crashed: {e}", exc_info=True)


@router.post("/{discussion_id}/retry", summary="Retry a failed or partially completed discussion")
async def retry_discussion(discussion_id: str, background_tasks: BackgroundTasks) -> dict[str, str]:
    from discubot.app.dependencies import get_store

    store = get_store()
    record = await store.get_discussion(discussion_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Discussion not found")

    job = await store.get_job(record.sync_job_id) if record.sync_job_id else None
    if not is_retry_eligible(record, job):
        raise HTTPException(
            status_code=409,
            detail=f"Discussion is {record.status.value}; only failed or partially completed discussions can be retried",
        )

    background_tasks.add_task(_retry_in_background, discussion_id)
    return {"status": "accepted", "message": f"retry queued for {discussion_id}"}


@router.get("/{discussion_id}", summary="Get a discussion with its job and tasks")
async def get_discussion(discussion_id: str) -> dict[str, Any]:
    from discubot.app.dependencies import get_store

    store = get_store()
    record = await store.get_discussion(discussion_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Discussion not found")

    job = await store.get_job(record.sync_job_id) if record.sync_job_id else None
    tasks = await store.list_tasks(discussion_id)
    return {
        "discussion": record.model_dump(mode="json"),
        "job": job.model_dump(mode="json") if job else None,
        "tasks": [t.model_dump(mode="json") for t in tasks],
    }

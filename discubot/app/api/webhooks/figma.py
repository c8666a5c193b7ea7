"""
Figma Webhook Handler for Discubot.

Figma comment notifications arrive as emails forwarded by an inbound
mail service (Mailgun-style form fields).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Request

from discubot.adapters import get_adapter
from discubot.errors import MalformedInputError
from discubot.models import SourceType

from .common import ack, process_discussion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/figma",
    summary="Receive forwarded Figma comment emails",
    responses={200: {"description": "Email acknowledged"}},
)
async def receive_figma_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
) -> dict[str, str]:
    """Parse a forwarded notification email and queue processing."""
    try:
        form = await request.form()
        payload = {key: str(value) for key, value in form.items()}

        logger.info(
            f"[webhook:figma] Email from={payload.get('from', '')!r} "
            f"subject={payload.get('subject', '')[:60]!r}"
        )

        adapter = get_adapter(SourceType.FIGMA)
        try:
            parsed = await adapter.parse_incoming(payload)
        except MalformedInputError as e:
            logger.warning(f"[webhook:figma] Ignored email: {e.message}")
            return ack("ignored", e.message)

        background_tasks.add_task(process_discussion, parsed)
        logger.info(f"[webhook:figma] Queued file {parsed.source_thread_id} (slug={parsed.team_id})")
        return ack("accepted", "processing queued")

    except Exception as e:
        logger.error(f"[webhook:figma] Webhook error: {e}", exc_info=True)
        return ack("error", "internal error")

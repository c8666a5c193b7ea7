"""
Notion Webhook Handler for Discubot.

Receives ``comment.created`` events. The event carries ids only; the
comment body is fetched with the workspace's integration token, which is
why the input configuration is resolved before parsing. Only comments
mentioning the trigger keyword are processed.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Request

from discubot.adapters import get_adapter
from discubot.errors import DiscubotError, MalformedInputError
from discubot.models import SourceType

from .common import ack, process_discussion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/notion",
    summary="Receive Notion comment webhooks",
    responses={200: {"description": "Event acknowledged"}},
)
async def receive_notion_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
) -> dict[str, str]:
    """Resolve the workspace, parse the comment, check the trigger, queue."""
    from discubot.app.dependencies import get_config_service, get_settings

    try:
        payload = await request.json()

        # Subscription handshake: the token must be pasted into Notion
        if "verification_token" in payload:
            logger.info(f"[webhook:notion] Verification token received: {payload['verification_token']}")
            return ack("accepted", "verification token received")

        workspace_id = payload.get("workspace_id") or "default"
        adapter_config = await get_config_service().adapter_config_for(workspace_id, SourceType.NOTION)
        if adapter_config is None:
            logger.warning(f"[webhook:notion] No configuration for workspace {workspace_id}")
            return ack("ignored", "no configuration for workspace")

        adapter = get_adapter(SourceType.NOTION)
        try:
            parsed = await adapter.parse_incoming(payload, adapter_config)
        except MalformedInputError as e:
            logger.debug(f"[webhook:notion] Ignored event: {e.message}")
            return ack("ignored", e.message)
        except DiscubotError as e:
            logger.error(f"[webhook:notion] Could not fetch comment (retryable={e.retryable}): {e}")
            return ack("error", "could not fetch comment")

        keyword = adapter_config.metadata.get("trigger_keyword") or get_settings().trigger_keyword
        if keyword.lower() not in parsed.content.lower():
            logger.debug(f"[webhook:notion] Comment without {keyword} ignored")
            return ack("ignored", "no trigger keyword")

        background_tasks.add_task(process_discussion, parsed)
        logger.info(f"[webhook:notion] Queued {parsed.source_thread_id} (workspace={workspace_id})")
        return ack("accepted", "processing queued")

    except Exception as e:
        logger.error(f"[webhook:notion] Webhook error: {e}", exc_info=True)
        return ack("error", "internal error")

"""
Slack Webhook Handler for Discubot.

Receives Slack Events API callbacks (``message`` and ``app_mention``).

Request flow:
1. Verify ``X-Slack-Signature`` when a signing secret is configured
2. Answer ``url_verification`` with the challenge
3. Ignore Slack's own retries (``X-Slack-Retry-Num``); the first delivery
   is already being processed
4. Parse with the Slack adapter and queue processing
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time

from fastapi import APIRouter, BackgroundTasks, Request

from discubot.adapters import get_adapter
from discubot.errors import MalformedInputError
from discubot.models import SourceType

from .common import ack, process_discussion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_MAX_AGE = 300


def verify_slack_signature(
    signing_secret: str,
    timestamp: str | None,
    body: bytes,
    signature: str | None,
    *,
    now: float | None = None,
) -> bool:
    """
    Check a Slack v0 request signature.

    Requests older than five minutes are rejected to prevent replays.
    """
    if not timestamp or not signature:
        return False
    try:
        sent_at = int(timestamp)
    except ValueError:
        return False

    current = time.time() if now is None else now
    if abs(current - sent_at) > SIGNATURE_MAX_AGE:
        return False

    base = b"v0:" + timestamp.encode() + b":" + body
    expected = "v0=" + hmac.new(signing_secret.encode(), base, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


@router.post(
    "/slack",
    summary="Receive Slack Events API callbacks",
    responses={200: {"description": "Event acknowledged"}},
)
async def receive_slack_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
) -> dict[str, str]:
    """
    Acknowledge a Slack event and queue processing.

    Always answers 200 so Slack does not retry.
    """
    from discubot.app.dependencies import get_settings

    try:
        body = await request.body()
        settings = get_settings()

        if settings.slack_signing_secret is not None:
            valid = verify_slack_signature(
                settings.slack_signing_secret.get_secret_value(),
                request.headers.get("X-Slack-Request-Timestamp"),
                body,
                request.headers.get("X-Slack-Signature"),
            )
            if not valid:
                logger.warning("[webhook:slack] Invalid request signature")
                return ack("error", "invalid signature")

        try:
            payload = json.loads(body or b"{}")
        except ValueError:
            return ack("error", "invalid JSON")

        if payload.get("type") == "url_verification":
            return {"challenge": str(payload.get("challenge") or "")}

        retry_num = request.headers.get("X-Slack-Retry-Num")
        if retry_num:
            reason = request.headers.get("X-Slack-Retry-Reason", "")
            logger.info(f"[webhook:slack] Ignoring retry #{retry_num} ({reason})")
            return ack("ignored", "retry ignored")

        adapter = get_adapter(SourceType.SLACK)
        try:
            parsed = await adapter.parse_incoming(payload)
        except MalformedInputError as e:
            logger.debug(f"[webhook:slack] Ignored event: {e.message}")
            return ack("ignored", e.message)

        background_tasks.add_task(process_discussion, parsed)
        logger.info(f"[webhook:slack] Queued {parsed.source_thread_id} (team={parsed.team_id})")
        return ack("accepted", "processing queued")

    except Exception as e:
        logger.error(f"[webhook:slack] Webhook error: {e}", exc_info=True)
        return ack("error", "internal error")

"""
Shared background processing for webhook handlers.

Handlers acknowledge the source immediately and run the processor as a
FastAPI background task; the processor persists its own terminal state,
so failures here are only logged.
"""

from __future__ import annotations

import logging

from discubot.errors import DiscubotError, ProcessingError
from discubot.models import ParsedDiscussion

logger = logging.getLogger(__name__)


def ack(status: str, message: str) -> dict[str, str]:
    """Body returned to sources: accepted, ignored or error."""
    return {"status": status, "message": message}


async def process_discussion(parsed: ParsedDiscussion) -> None:
    """
    Background task running one discussion through the processor.

    Args:
        parsed: Discussion parsed by the source adapter
    """
    from discubot.app.dependencies import get_processor

    try:
        result = await get_processor().process(parsed)
        if result.duplicate:
            logger.info(f"[webhook] Duplicate discussion {parsed.discussion_key}, skipped")
            return
        logger.info(
            f"[webhook] Discussion {result.discussion_id} {result.outcome.value}: "
            f"{len(result.created_tasks)} task(s) in {result.processing_time_ms:.0f}ms"
        )
    except ProcessingError as e:
        logger.error(
            f"[webhook] Processing failed for {parsed.discussion_key} at {e.stage} "
            f"(retryable={e.retryable}): {e.message}"
        )
    except DiscubotError as e:
        logger.warning(f"[webhook] Discussion {parsed.discussion_key} rejected: {e}")
    except Exception as e:
        logger.error(f"[webhook] Processing error for {parsed.discussion_key}: {e}", exc_info=True)

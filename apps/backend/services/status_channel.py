"""
Server side of the presentation status channel (Server-Sent Events).

One generator per connection: it re-reads the presentation every
``interval`` seconds and pushes the full record until the status becomes
terminal, the record disappears, or the client goes away.
"""

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional

from agents import config
from agents.persistence.presentation_store import PresentationStore
from models.presentation import TERMINAL_STATUSES
from setup_logging_optimized import get_logger
from utils.sse import format_sse, sse_comment

logger = get_logger(__name__)

NOT_FOUND = {"error": "Presentation not found"}
FETCH_FAILED = {"error": "Failed to fetch presentation"}


async def presentation_status_events(
    store: PresentationStore,
    presentation_id: str,
    user_id: Optional[str] = None,
    interval: float = None,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[str]:
    interval = config.STATUS_STREAM_INTERVAL if interval is None else interval
    logger.info(f"Status channel opened for presentation {presentation_id}")
    yield sse_comment("SSE connection established")

    try:
        while True:
            await asyncio.sleep(interval)
            if is_disconnected is not None and await is_disconnected():
                logger.info(f"Status channel client for {presentation_id} disconnected")
                return

            try:
                presentation = await store.get(presentation_id, user_id)
            except Exception as e:
                logger.error(f"Status channel fetch failed for {presentation_id}: {e}")
                yield format_sse(FETCH_FAILED, event="error")
                return

            if presentation is None:
                yield format_sse(NOT_FOUND, event="error")
                return

            yield format_sse(presentation.model_dump_json())

            status = presentation.status.value
            if status in TERMINAL_STATUSES:
                logger.info(f"Presentation {presentation_id} reached {status}, closing status channel")
                yield format_sse({"status": status}, event="complete")
                return
    except asyncio.CancelledError:
        logger.info(f"Status channel for {presentation_id} cancelled")
        raise

"""
Outline generation endpoints: one-shot JSON and Server-Sent Events stream.
"""
import asyncio
from contextlib import aclosing

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from api.dependencies import get_services
from models.requests import OutlineRequest
from models.stage import PipelineResult
from services.app_services import AppServices
from setup_logging_optimized import get_logger
from utils.sse import SSE_HEADERS, format_sse

logger = get_logger(__name__)
router = APIRouter()

DISCONNECT_POLL_SECONDS = 0.5


def outline_status_code(result: PipelineResult) -> int:
    if result.success:
        return 200
    if result.failed_stage == "preprocessing" and result.rejected:
        return 400
    if result.failed_stage == "outline" and result.research is not None:
        # Research survived; hand it back as a partial result
        return 206
    return 500


@router.post("/api/generate-outline")
async def generate_outline(request: OutlineRequest, services: AppServices = Depends(get_services)):
    logger.info(f"Outline requested ({request.mode} mode)")
    result = await services.pipeline.run(request.prompt, request.mode)
    status_code = outline_status_code(result)
    if status_code >= 500:
        logger.error(f"Outline generation failed at {result.failed_stage}: {result.error}")
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.post("/api/generate-outline-stream")
async def generate_outline_stream(request: OutlineRequest, http_request: Request,
                                  services: AppServices = Depends(get_services)):
    logger.info(f"Streaming outline requested ({request.mode} mode)")

    async def event_stream():
        cancel_event = asyncio.Event()

        async def watch_disconnect():
            while not cancel_event.is_set():
                if await http_request.is_disconnected():
                    logger.info("Outline stream client disconnected, cancelling pipeline")
                    cancel_event.set()
                    return
                await asyncio.sleep(DISCONNECT_POLL_SECONDS)

        watcher = asyncio.create_task(watch_disconnect())
        try:
            async with aclosing(services.pipeline.stream(request.prompt, request.mode, cancel_event)) as events:
                async for event in events:
                    yield format_sse(event)
        except Exception as e:
            logger.error(f"Unexpected error in outline stream: {e}", exc_info=True)
            yield format_sse({"type": "error", "message": f"Outline generation failed: {e}"})
        finally:
            cancel_event.set()
            watcher.cancel()

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)

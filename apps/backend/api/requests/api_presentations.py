"""
Presentation CRUD, duplication, search and the status channel.

Authentication is handled upstream; every route takes the owner as an
explicit ``user_id`` query parameter.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response
from fastapi.responses import StreamingResponse

from api.dependencies import error_response, get_services
from agents.generation.exceptions import ConcurrencyConflictError, PersistenceError, StatusMutationError, ValidationError
from models.requests import UpdatePresentationRequest
from services.app_services import AppServices
from services.status_channel import presentation_status_events
from setup_logging_optimized import get_logger
from utils.sse import SSE_HEADERS

logger = get_logger(__name__)
router = APIRouter()

NOT_FOUND = "Presentation not found"


def etag_for(version: int) -> str:
    return f'"{version}"'


def parse_if_match(value: Optional[str]) -> Optional[int]:
    """``If-Match: "3"`` (weak tags allowed) -> 3; None when absent or ``*``."""
    if not value or value.strip() == "*":
        return None
    tag = value.strip()
    if tag.startswith("W/"):
        tag = tag[2:]
    return int(tag.strip('"'))


@router.get("/api/presentations")
async def list_presentations(user_id: str, q: Optional[str] = None, services: AppServices = Depends(get_services)):
    try:
        if q:
            presentations = await services.presentations.search(user_id, q)
        else:
            presentations = await services.presentations.list_for_user(user_id)
    except PersistenceError as e:
        logger.error(f"Error listing presentations for {user_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return [p.model_dump(mode="json") for p in presentations]


@router.get("/api/presentations/{presentation_id}")
async def get_presentation(presentation_id: str, response: Response, user_id: Optional[str] = None,
                           services: AppServices = Depends(get_services)):
    presentation = await services.presentations.get(presentation_id, user_id)
    if presentation is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    response.headers["ETag"] = etag_for(presentation.version)
    return presentation.model_dump(mode="json")


@router.patch("/api/presentations/{presentation_id}")
async def update_presentation(
    presentation_id: str,
    request: UpdatePresentationRequest,
    response: Response,
    user_id: Optional[str] = None,
    if_match: Optional[str] = Header(default=None),
    services: AppServices = Depends(get_services),
):
    changes = request.changes()
    unknown = [k for k in (request.model_extra or {}) if k not in ("status", "version", "id", "user_id", "error_message")]
    if unknown:
        return error_response(400, f"Unknown field(s): {', '.join(sorted(unknown))}")
    try:
        expected_version = parse_if_match(if_match)
    except ValueError:
        return error_response(400, "Invalid If-Match header")

    try:
        presentation = await services.presentations.update(
            presentation_id, changes, user_id, expected_version=expected_version
        )
    except StatusMutationError as e:
        logger.warning(f"Rejected update of protected fields on {presentation_id}: {e.message}")
        return error_response(400, e.message)
    except ValidationError as e:
        return error_response(400, e.message)
    except ConcurrencyConflictError:
        return error_response(409, "Presentation was modified by another request")

    if presentation is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    response.headers["ETag"] = etag_for(presentation.version)
    return presentation.model_dump(mode="json")


@router.delete("/api/presentations/{presentation_id}")
async def delete_presentation(presentation_id: str, user_id: Optional[str] = None,
                              services: AppServices = Depends(get_services)):
    if not await services.presentations.delete(presentation_id, user_id):
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return {"success": True}


@router.post("/api/presentations/{presentation_id}/duplicate")
async def duplicate_presentation(presentation_id: str, user_id: Optional[str] = None,
                                 services: AppServices = Depends(get_services)):
    duplicate = await services.presentations.duplicate(presentation_id, user_id)
    if duplicate is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return duplicate.model_dump(mode="json")


@router.get("/api/presentations/{presentation_id}/stream")
async def stream_presentation_status(presentation_id: str, request: Request, user_id: Optional[str] = None,
                                     services: AppServices = Depends(get_services)):
    """Server-Sent Events channel that follows a presentation until it completes or fails."""
    events = presentation_status_events(
        services.presentations,
        presentation_id,
        user_id=user_id,
        interval=request.app.state.status_interval,
        is_disconnected=request.is_disconnected,
    )
    return StreamingResponse(events, media_type="text/event-stream", headers=SSE_HEADERS)

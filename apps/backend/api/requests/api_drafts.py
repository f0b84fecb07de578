"""
Draft endpoints: read, replace title/outline, and single outline edits
"""
from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import error_response, get_services
from agents.generation.exceptions import ValidationError
from models.requests import DraftEditRequest, UpdateDraftRequest
from services.app_services import AppServices
from setup_logging_optimized import get_logger

logger = get_logger(__name__)
router = APIRouter()

NOT_FOUND = "Draft not found"


@router.get("/api/drafts/{draft_id}")
async def get_draft(draft_id: str, services: AppServices = Depends(get_services)):
    draft = await services.drafts.get(draft_id)
    if draft is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return draft.model_dump(mode="json")


@router.patch("/api/drafts/{draft_id}")
async def update_draft(draft_id: str, request: UpdateDraftRequest, services: AppServices = Depends(get_services)):
    draft = await services.drafts.update(draft_id, title=request.title, outline=request.outline)
    if draft is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return draft.model_dump(mode="json")


@router.post("/api/drafts/{draft_id}/edits")
async def edit_draft(draft_id: str, request: DraftEditRequest, services: AppServices = Depends(get_services)):
    drafts = services.drafts
    try:
        if request.op == "rename_slide":
            if request.index is None or request.text is None:
                return error_response(400, "rename_slide requires index and text")
            draft = await drafts.update_slide_title(draft_id, request.index, request.text)
        elif request.op == "update_bullet":
            if request.index is None or request.bullet_index is None or request.text is None:
                return error_response(400, "update_bullet requires index, bullet_index and text")
            draft = await drafts.update_bullet(draft_id, request.index, request.bullet_index, request.text)
        else:
            if request.order is None:
                return error_response(400, "reorder requires order")
            draft = await drafts.reorder_slides(draft_id, request.order)
    except ValidationError as e:
        return error_response(400, e.message)

    if draft is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    logger.info(f"Applied {request.op} to draft {draft_id}")
    return draft.model_dump(mode="json")

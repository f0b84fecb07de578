"""
API endpoint that starts background slide generation for an outline
"""
from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import error_response, get_services
from agents.generation.exceptions import GenerationError, ValidationError
from models.requests import GeneratePresentationRequest, GeneratePresentationResponse
from services.app_services import AppServices
from setup_logging_optimized import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.post("/api/generate-presentation")
async def generate_presentation(request: GeneratePresentationRequest,
                                services: AppServices = Depends(get_services)):
    """
    Create a presentation in ``generating`` state and return its id at once.
    Progress is followed through the status channel.
    """
    try:
        presentation_id = await services.controller.start_generation(
            draft_id=request.draft_id,
            outline=request.outline,
            citation_style=request.citation_style,
            theme=request.theme,
            user_id=request.user_id,
        )
    except ValidationError as e:
        return error_response(400, e.message)
    except GenerationError as e:
        logger.error(f"Could not start generation: {e}")
        raise HTTPException(status_code=500, detail=e.message)

    return GeneratePresentationResponse(presentation_id=presentation_id, presentationId=presentation_id)

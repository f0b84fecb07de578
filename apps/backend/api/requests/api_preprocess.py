"""
API endpoint for validating and enhancing a raw prompt
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import get_services
from models.requests import PreprocessRequest
from services.app_services import AppServices
from setup_logging_optimized import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.post("/api/preprocess")
async def preprocess_prompt(request: PreprocessRequest, services: AppServices = Depends(get_services)):
    result = await services.enhancer.enhance(request.prompt)
    enhancement = result.data

    body = {
        "success": result.success,
        "data": {
            "original_prompt": request.prompt,
            "enhanced_prompt": enhancement.enhanced_text if enhancement else "",
            "is_valid": bool(enhancement and enhancement.is_valid),
            "warnings": enhancement.warnings if enhancement else [],
        },
        "token_usage": result.token_usage,
    }
    if result.success:
        return body

    body["error"] = result.error
    if enhancement is None:
        # Upstream failure, not a rejected prompt
        logger.error(f"Preprocessing failed: {result.error}")
        return JSONResponse(status_code=500, content=body)
    return JSONResponse(status_code=400, content=body)

from fastapi import Request
from fastapi.responses import JSONResponse

from services.app_services import AppServices


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def error_response(status_code: int, message: str) -> JSONResponse:
    """Errors are returned as ``{"error": message}``."""
    return JSONResponse(status_code=status_code, content={"error": message})

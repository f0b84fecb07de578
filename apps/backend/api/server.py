import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

load_dotenv()

from setup_logging_optimized import setup_logging
from config.logging_config import apply_logging_config

setup_logging()
apply_logging_config()

from agents import config
from agents.generation.exceptions import GenerationError, NotFoundError, ValidationError
from api.requests.api_drafts import router as drafts_router
from api.requests.api_generate_outline import router as outline_router
from api.requests.api_generate_presentation import router as generation_router
from api.requests.api_preprocess import router as preprocess_router
from api.requests.api_presentations import router as presentations_router
from services.app_services import AppServices, build_services

logger = logging.getLogger(__name__)

ENVIRONMENT = (
    os.getenv("ENVIRONMENT")
    or os.getenv("ENV")
    or "development"
).lower()

PRODUCTION_ORIGINS = {
    "https://dossier.app",
    "https://www.dossier.app",
}

DEV_ORIGINS = {
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
}


def init_sentry():
    """No-op unless SENTRY_DSN is set."""
    sentry_sdk.init(
        dsn=os.getenv("SENTRY_DSN"),
        integrations=[
            FastApiIntegration(transaction_style='endpoint'),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=0.1,
        environment=ENVIRONMENT,
        release=os.getenv("RENDER_GIT_COMMIT", "unknown"),
        send_default_pii=False,
    )


def create_app(services: AppServices = None, status_interval: float = None) -> FastAPI:
    """Build the API. Passing ``services`` skips the default wiring (used by tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.services is None:
            app.state.services = build_services()
        logger.info("Dossier API started")
        yield
        await app.state.services.supervisor.shutdown(config.JOB_SHUTDOWN_GRACE_SECONDS)
        logger.info("Dossier API stopped")

    app = FastAPI(title="Dossier API", lifespan=lifespan)
    app.state.services = services
    app.state.status_interval = config.STATUS_STREAM_INTERVAL if status_interval is None else status_interval

    allowed_origins = set(PRODUCTION_ORIGINS)
    if ENVIRONMENT != "production":
        allowed_origins.update(DEV_ORIGINS)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["ETag"],
        max_age=3600,
    )

    @app.exception_handler(GenerationError)
    async def generation_error_handler(request: Request, exc: GenerationError):
        if isinstance(exc, ValidationError):
            return JSONResponse(status_code=400, content={"error": exc.message})
        if isinstance(exc, NotFoundError):
            return JSONResponse(status_code=404, content={"error": exc.message})
        logger.error(f"Unhandled error on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": exc.message})

    app.include_router(preprocess_router)
    app.include_router(outline_router)
    app.include_router(generation_router)
    app.include_router(presentations_router)
    app.include_router(drafts_router)

    @app.get("/api/health")
    async def health_check():
        return {"status": "healthy", "timestamp": datetime.now().isoformat()}

    @app.get("/api/v1/jobs/stats")
    async def job_stats():
        """Background generation jobs: submitted/completed/failed counts and current load."""
        return app.state.services.supervisor.get_stats()

    return app


init_sentry()
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=int(os.getenv("PORT", "9090")))

"""
FastAPI application for the Brief Engine API.

Sets up the app, CORS, the brief routes and the health check.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from briefing import __version__
from briefing.api.routes.briefs import router as briefs_router
from briefing.config import config
from briefing.utils.logging import api_logger, configure_logging


app = FastAPI(
    title="Brief Engine API",
    description="Policy brief generation with consensus scoring and refinement",
    version=__version__,
    docs_url=None if config.is_production else "/docs",
    redoc_url=None if config.is_production else "/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(briefs_router)


# ===== Health Check =====

@app.get("/health")
async def health_check():
    """Health check endpoint. Must stay fast and never touch the model or database."""
    return {
        "status": "healthy",
        "version": __version__,
        "environment": config.ENVIRONMENT,
        "supabase_configured": config.supabase_configured,
        "search_configured": config.search_configured,
    }


# ===== Error Handlers =====

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Never leak exception text; the type is enough to find the log entry."""
    api_logger.error("Unhandled API error", path=request.url.path, error_type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": "An error occurred",
            "type": type(exc).__name__
        }
    )


@app.on_event("startup")
async def startup_event():
    configure_logging(config.LOG_LEVEL)
    api_logger.info(
        "Brief Engine API starting",
        environment=config.ENVIRONMENT,
        auth_required=config.auth_required,
        supabase_configured=config.supabase_configured,
        search_configured=config.search_configured,
    )
    if not config.ANTHROPIC_API_KEY:
        api_logger.warning("ANTHROPIC_API_KEY is not set; generation will fail")
    if config.is_production and not config.auth_required:
        api_logger.warning("DEV_MODE is on in production with no API keys; the API is open")

import time
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from satcoach.core.config import settings
from satcoach.core.rate_limit import RateLimitMiddleware
from satcoach.api import generator, tutor


def _configure_logging():
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


_configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
)

# CORS: wildcard only in development; production must list its frontend origins
if settings.ENV == "development":
    cors_origins = ["*"]
elif settings.BACKEND_CORS_ORIGINS:
    cors_origins = [str(origin).rstrip("/") for origin in settings.BACKEND_CORS_ORIGINS]
else:
    logger.warning(
        "PRODUCTION: BACKEND_CORS_ORIGINS not configured. "
        "All cross-origin requests will be blocked."
    )
    cors_origins = []

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RateLimitMiddleware, enabled=(settings.ENV == "production"))

app.include_router(generator.router, prefix=f"{settings.API_PREFIX}/generate", tags=["generator"])
app.include_router(tutor.router, prefix=settings.API_PREFIX, tags=["tutor"])


@app.get("/health", tags=["system"])
async def health_check():
    """Health check for Docker and load balancers."""
    from satcoach.services.gemini_client import gemini_client

    return {
        "status": "ok",
        "timestamp": time.time(),
        "ai_configured": gemini_client.configured,
    }

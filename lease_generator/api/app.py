"""FastAPI application factory"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from lease_generator.api.routes.lease import GENERATE_PATHS
from lease_generator.api.routes.lease import router as lease_router
from lease_generator.services.pipeline import LeasePipeline, build_pipeline
from lease_generator.utils.config import Settings, get_settings
from lease_generator.utils.logging import configure_logging

logger = logging.getLogger(__name__)

EVICT_INTERVAL_SECONDS = 300

CORS_METHODS = ["GET", "POST", "OPTIONS"]
CORS_HEADERS = ["Content-Type"]
CORS_EXPOSE_HEADERS = ["Content-Disposition", "X-Rate-Limit-Remaining", "X-Rate-Limit-Reset", "Retry-After"]

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": ", ".join(CORS_METHODS),
    "Access-Control-Allow-Headers": ", ".join(CORS_HEADERS),
    "Access-Control-Max-Age": "600",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup: start rate limit window eviction
    task = asyncio.create_task(_evict_loop(app.state.pipeline))
    yield
    # Shutdown: cancel eviction task
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


async def _evict_loop(pipeline: LeasePipeline):
    """Periodically drop rate limit windows that have rolled over"""
    while True:
        await asyncio.sleep(EVICT_INTERVAL_SECONDS)
        removed = await pipeline.rate_limiter.evict_expired()
        if removed:
            logger.debug(f"Evicted {removed} expired rate limit windows")


def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[LeasePipeline] = None,
) -> FastAPI:
    """Create and configure the FastAPI application"""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Lease Generator API",
        description="Generate residential lease agreements from structured lease terms",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.pipeline = pipeline or build_pipeline(settings)

    # CORS: public endpoint, any origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        expose_headers=CORS_EXPOSE_HEADERS,
    )

    # Added last so it runs before CORSMiddleware, which answers preflights with "OK"
    @app.middleware("http")
    async def answer_options(request: Request, call_next):
        if request.method == "OPTIONS" and request.url.path in GENERATE_PATHS:
            return Response(status_code=200, headers=PREFLIGHT_HEADERS)
        return await call_next(request)

    app.include_router(lease_router)

    return app

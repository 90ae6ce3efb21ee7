"""
FastAPI application factory.

The API is a thin control surface over the collection and pipeline
services: start/stop collectors, inspect run configs, trigger the
pipeline. Work runs in background tasks owned by the services.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from problem_vault import __version__
from problem_vault.api.dependencies import (
    cleanup_dependencies,
    get_collection_service,
    get_repositories,
)
from problem_vault.api.routes import collectors, health, pipeline
from problem_vault.collectors.config import CollectorsConfig
from problem_vault.config.settings import get_settings
from problem_vault.observability.logging import bind_context, clear_context, setup_logging
from problem_vault.services.factory import init_schema

logger = structlog.get_logger(__name__)

API_DESCRIPTION = """
Collects user pain-point signals from public sources and distils them into a
deduplicated, scored vault of problems.

When `API_KEYS` is set, every route except `/health` needs an `X-API-KEY` header.
"""

OPENAPI_TAGS = [
    {"name": "health", "description": "Liveness and database reachability"},
    {"name": "collectors", "description": "Start, stop and inspect source collectors"},
    {"name": "pipeline", "description": "Extract, deduplicate and score collected signals"},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("Problem vault API starting up", environment=settings.environment)

    collectors_config = CollectorsConfig()
    repos = await get_repositories()
    await init_schema(repos, collectors_config)

    # RUNNING rows left behind by a crash would block those sources forever
    service = await get_collection_service()
    await service.reset_stale_statuses()

    if collectors_config.seed_targets_on_startup:
        seeded = await repos.targets.seed_from_json()
        logger.info("Seeded collector targets", count=seeded)

    yield

    logger.info("Problem vault API shutting down")
    await cleanup_dependencies()


async def request_context(request: Request, call_next) -> Response:
    """Tag each request with an id, echo it back and log the outcome."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    bind_context(request_id=request_id)
    started = time.perf_counter()
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "HTTP request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response
    finally:
        clear_context()


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        error=str(exc),
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Problem Vault API",
        description=API_DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
        openapi_tags=OPENAPI_TAGS,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_context)
    app.add_exception_handler(Exception, unhandled_error)

    for module, tag in ((health, "health"), (collectors, "collectors"), (pipeline, "pipeline")):
        app.include_router(module.router, tags=[tag])

    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": "Problem Vault API", "version": __version__, "docs": "/docs"}

    return app

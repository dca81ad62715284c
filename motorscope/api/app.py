"""
FastAPI application factory.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from motorscope import __version__
from motorscope.api.dependencies import set_service
from motorscope.api.routes import health, messages, status, ws_events
from motorscope.config.settings import get_settings
from motorscope.orchestrator.service import OrchestratorService

logger = structlog.get_logger(__name__)


def _make_lifespan(service: OrchestratorService | None, installed: bool):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the orchestrator with the app and stop it on shutdown."""
        settings = get_settings()
        if settings.tracing_enabled:
            from motorscope.observability.tracing import setup_tracing

            setup_tracing(
                service_name=settings.otel_service_name,
                otlp_endpoint=settings.otel_exporter_otlp_endpoint,
            )

        running = service or OrchestratorService(settings=settings)
        await running.start(installed=installed)
        set_service(running)
        logger.info("Orchestrator API started")

        yield

        logger.info("Orchestrator API shutting down")
        set_service(None)
        await running.stop()

    return lifespan


def create_app(
    service: OrchestratorService | None = None,
    installed: bool = False,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        service: Pre-built service (a default one is built at startup otherwise)
        installed: Run the first-install routine instead of the startup one

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    openapi_tags = [
        {"name": "health", "description": "Service health checks"},
        {"name": "messages", "description": "Orchestrator message protocol"},
        {"name": "status", "description": "Session, refresh status and timers"},
        {"name": "websocket", "description": "Real-time broadcast events"},
    ]

    app = FastAPI(
        title="MotorScope Orchestrator API",
        description="""
Local control surface for the MotorScope background orchestrator.

Send protocol messages to `POST /messages`, read progress from `GET /status`,
and subscribe to broadcasts on `/ws/events`.

## Authentication

Requires `X-API-KEY` header for all requests except `/health` when
`API_KEYS` is set.
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=_make_lifespan(service, installed),
        openapi_tags=openapi_tags,
    )

    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            duration = time.perf_counter() - start_time
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception", error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(messages.router, tags=["messages"])
    app.include_router(status.router, tags=["status"])
    app.include_router(ws_events.router, tags=["websocket"])

    return app

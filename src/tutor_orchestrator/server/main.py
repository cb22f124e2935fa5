"""FastAPI application factory and server entry point."""

import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware

from tutor_orchestrator import __version__
from tutor_orchestrator.config import Settings, get_settings
from tutor_orchestrator.exceptions import ErrorKind, OrchestratorError
from tutor_orchestrator.server.routes import ai_router
from tutor_orchestrator.service import TutorOrchestrator
from tutor_orchestrator.telemetry.logger import RequestContext
from tutor_orchestrator.telemetry.metrics import MetricsCollector, metrics_collector

logger = structlog.get_logger()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to add request ID to all requests."""

    def __init__(self, app, metrics: Optional[MetricsCollector] = None):
        super().__init__(app)
        self.metrics = metrics or metrics_collector

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        with RequestContext(request_id):
            response = await call_next(request)
        process_time = time.time() - start_time

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(process_time)

        self.metrics.record_request(request.method, request.url.path, response.status_code, process_time)
        logger.info(
            "Request processed",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time=process_time,
        )
        return response


def _error_body(request: Request, error: str, message: str, details=None) -> dict:
    return {
        "error": error,
        "message": message,
        "details": details or {},
        "request_id": getattr(request.state, "request_id", "unknown"),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def create_app(
    orchestrator: Optional[TutorOrchestrator] = None,
    settings: Optional[Settings] = None,
    metrics: Optional[MetricsCollector] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    When ``orchestrator`` is omitted one is built from settings at startup and
    closed at shutdown.
    """
    settings = settings or get_settings()
    metrics = metrics or metrics_collector

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = getattr(app.state, "orchestrator", None) is None
        if owned:
            app.state.orchestrator = TutorOrchestrator.from_settings(settings)
        metrics.set_build_info(__version__, settings.environment)
        logger.info("Starting AI tutor orchestrator", version=__version__, status=app.state.orchestrator.status())
        yield
        logger.info("Shutting down AI tutor orchestrator")
        if owned:
            await app.state.orchestrator.aclose()
            app.state.orchestrator = None

    app = FastAPI(
        title=settings.app_name,
        description="Multi-provider AI tutoring, code execution and speech orchestration",
        version=__version__,
        redoc_url=None if settings.is_production else "/redoc",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.add_middleware(RequestIDMiddleware, metrics=metrics)

    @app.exception_handler(OrchestratorError)
    async def orchestrator_exception_handler(request: Request, exc: OrchestratorError):
        """Map the error taxonomy onto HTTP statuses."""
        log = logger.warning if exc.status_code < 500 else logger.error
        log("Request failed", kind=exc.kind.value, error=exc.message, path=request.url.path)
        metrics.record_error(exc.kind.value, "api")
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(_error_body(request, exc.kind.value, exc.message, exc.details)),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors."""
        logger.warning("Validation error", errors=str(exc.errors()), path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonable_encoder(
                _error_body(
                    request,
                    ErrorKind.INVALID_PAYLOAD.value,
                    "Request payload failed validation",
                    {"errors": exc.errors()},
                )
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception("Unexpected error", path=request.url.path)
        metrics.record_error(type(exc).__name__, "api")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(request, "internal_error", "Internal server error"),
        )

    app.include_router(ai_router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health(request: Request):
        """Health check endpoint."""
        current = request.app.state.orchestrator
        return {
            "status": "healthy",
            "version": __version__,
            "service": "ai-tutor-orchestrator",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.environment,
            "providers_configured": current.registry.provider_ids if current else [],
        }

    @app.get("/metrics")
    async def prometheus_metrics():
        return Response(content=metrics.export_prometheus(), media_type=CONTENT_TYPE_LATEST)

    return app


def start_server(host: Optional[str] = None, port: Optional[int] = None, reload: bool = False):
    """Start the server programmatically."""
    settings = get_settings()
    uvicorn.run(
        "tutor_orchestrator.server.main:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
        reload=reload,
    )


if __name__ == "__main__":
    start_server()

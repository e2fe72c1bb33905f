"""FastAPI application factory for the AI processing service."""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable
from typing import Any, Callable, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.routing import APIRouter
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from pydantic import BaseModel
from starlette import status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from .config import AppConfig, load_config
from .constants import CORRELATION_HEADER
from .errors import (
    TIMEOUT_CODE,
    FetchErrorCode,
    PipelineError,
    PipelineStage,
    redact_sensitive,
)
from .logging import bind_context, clear_context, get_logger, setup_logging
from .runtime.factory import PipelineRuntime, build_runtime
from .schemas import DocumentEvent, DocumentReference
from .services.celery_app import configure_celery, process_document_event
from .util.concurrency import run_blocking

_REQUEST_COUNT = Counter(
    "cv_http_requests_total",
    "Total HTTP requests processed by the AI processing service.",
    ("method", "route", "status_code"),
)
_REQUEST_LATENCY = Histogram(
    "cv_http_request_duration_seconds",
    "Latency of HTTP requests handled by the AI processing service.",
    ("method", "route", "status_code"),
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)
_REQUEST_IN_PROGRESS = Gauge(
    "cv_http_requests_in_progress",
    "Concurrent HTTP requests being processed by the AI processing service.",
    ("method", "route"),
)


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str
    version: str
    uptimeSeconds: float
    languageDetector: str


class EnqueueResponse(BaseModel):
    status: str = "queued"
    taskId: str
    documentId: int


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attach correlation IDs and request metadata to the log context."""

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)
        self._logger = get_logger(__name__)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER, str(uuid.uuid4()))
        request.state.correlation_id = correlation_id
        route = _resolve_route_template(request)
        method = request.method.upper()
        _REQUEST_IN_PROGRESS.labels(method=method, route=route).inc()
        bind_context(
            correlation_id=correlation_id,
            http_method=request.method,
            http_path=str(request.url.path),
        )
        start = time.perf_counter()
        self._logger.info("request.start")
        status_code: int | None = None

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            self._logger.exception("request.error", durationMs=duration_ms)
            if isinstance(exc, HTTPException):
                status_code = exc.status_code
            else:
                status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
            raise
        else:
            duration_ms = (time.perf_counter() - start) * 1000
            response.headers[CORRELATION_HEADER] = correlation_id
            self._logger.info(
                "request.complete", status_code=response.status_code, durationMs=duration_ms
            )
            return response
        finally:
            status_value = str(status_code or status.HTTP_500_INTERNAL_SERVER_ERROR)
            _REQUEST_LATENCY.labels(method=method, route=route, status_code=status_value).observe(
                time.perf_counter() - start
            )
            _REQUEST_COUNT.labels(method=method, route=route, status_code=status_value).inc()
            _REQUEST_IN_PROGRESS.labels(method=method, route=route).dec()
            clear_context("correlation_id", "http_method", "http_path")


def _resolve_route_template(request: Request) -> str:
    """Normalise the request path to the FastAPI route template to limit cardinality."""
    route = request.scope.get("route")
    if route is not None:
        template = getattr(route, "path", None)
        if template:
            return template
    return str(request.url.path)


def pipeline_error_status(exc: PipelineError) -> int:
    if exc.code == FetchErrorCode.NOT_FOUND.value:
        return status.HTTP_404_NOT_FOUND
    if exc.code == TIMEOUT_CODE:
        return status.HTTP_504_GATEWAY_TIMEOUT
    if exc.stage is PipelineStage.PUBLISH:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_502_BAD_GATEWAY


def error_response(
    *,
    code: str,
    message: str,
    correlation_id: str,
    status_code: int,
    retryable: bool | None = None,
    stage: Optional[str] = None,
) -> JSONResponse:
    payload: dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "correlationId": correlation_id,
        }
    }
    if stage is not None:
        payload["error"]["stage"] = stage
    if retryable is not None:
        payload["error"]["retryable"] = retryable
    return JSONResponse(
        status_code=status_code,
        content=payload,
        headers={CORRELATION_HEADER: correlation_id},
    )


def create_app(
    config: AppConfig | None = None,
    *,
    runtime: PipelineRuntime | None = None,
    log_level: str | None = None,
) -> FastAPI:
    """Create the FastAPI application."""
    if config is None:
        config = runtime.config if runtime is not None else load_config()

    setup_logging(
        log_level or config.log_level, redact_contact=config.log_redact_contact_details
    )
    logger = get_logger(__name__)

    app = FastAPI(title="AI Processing Service", version=config.service_version)
    app.state.config = config
    app.add_middleware(RequestContextMiddleware)
    app.state.started_at = time.monotonic()

    configure_celery(config)
    runtime = runtime or build_runtime(config)
    app.state.runtime = runtime

    router = APIRouter()

    @app.exception_handler(PipelineError)
    async def handle_pipeline_error(request: Request, exc: PipelineError) -> Response:
        correlation_id = getattr(request.state, "correlation_id", str(uuid.uuid4()))
        status_code = pipeline_error_status(exc)
        logger.warning(
            "http.pipeline_error",
            status_code=status_code,
            stage=exc.stage.value,
            code=exc.code,
            correlationId=correlation_id,
        )
        return error_response(
            code=exc.code,
            message=redact_sensitive(exc.message),
            correlation_id=correlation_id,
            status_code=status_code,
            retryable=exc.retryable,
            stage=exc.stage.value,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> Response:
        correlation_id = getattr(request.state, "correlation_id", str(uuid.uuid4()))
        logger.exception("http.unhandled_error", correlationId=correlation_id)
        return error_response(
            code="InternalError",
            message="Internal server error",
            correlation_id=correlation_id,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            retryable=False,
        )

    @router.get("/health", response_model=HealthResponse, tags=["health"])
    async def health(request: Request) -> HealthResponse:
        uptime_seconds = time.monotonic() - app.state.started_at
        payload = HealthResponse(
            uptimeSeconds=uptime_seconds,
            service=config.service_name,
            version=config.service_version,
            languageDetector=runtime.language_detector.state.value,
        )
        correlation_id = getattr(request.state, "correlation_id", None)
        logger.info("health.ok", uptimeSeconds=uptime_seconds, correlationId=correlation_id)
        return payload

    @router.post("/documents/process", tags=["documents"])
    async def process_document(reference: DocumentReference) -> JSONResponse:
        profile = await runtime.pipeline.run(
            reference, timeout_seconds=config.pipeline_timeout_seconds
        )
        return JSONResponse(profile.to_event())

    @router.post(
        "/documents/events",
        response_model=EnqueueResponse,
        status_code=status.HTTP_202_ACCEPTED,
        tags=["documents"],
    )
    async def enqueue_document_event(event: DocumentEvent) -> EnqueueResponse:
        payload = event.model_dump(mode="json", by_alias=True)
        result = await run_blocking(None, process_document_event.apply_async, args=[payload])
        logger.info("document.event_enqueued", documentId=event.document_id, taskId=result.id)
        return EnqueueResponse(taskId=str(result.id), documentId=event.document_id)

    app.include_router(router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        payload = generate_latest()
        headers = {"Cache-Control": "no-store"}
        return Response(payload, media_type=CONTENT_TYPE_LATEST, headers=headers)

    @app.on_event("startup")
    async def _startup_event() -> None:
        logger.info(
            "application.startup",
            service=config.service_name,
            version=config.service_version,
            publisherBackend=config.publisher_backend,
            languageDetector=runtime.language_detector.state.value,
        )

    @app.on_event("shutdown")
    async def _shutdown_event() -> None:
        logger.info("application.shutdown", service=config.service_name)
        await runtime.aclose()

    return app

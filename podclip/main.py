import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from podclip.api import artifacts, jobs, websocket
from podclip.config import Settings, get_settings
from podclip.constants.error_codes import get_error_spec
from podclip.exceptions import PodclipError
from podclip.jobs.pipeline import VideoPipeline
from podclip.jobs.scheduler import JobScheduler
from podclip.jobs.store import create_job_store
from podclip.schemas.errors import ErrorInfo, ErrorResponse
from podclip.services.notification_service import CompositeNotifier, JobNotifier, WebhookNotifier
from podclip.services.retention_sweeper import RetentionSweeper
from podclip.services.storage_service import ArtifactStorage

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _http_error_code(status_code: int) -> str:
    mapping = {
        400: "BAD_REQUEST",
        403: "ARTIFACT_ACCESS_DENIED",
        404: "NOT_FOUND",
        405: "BAD_REQUEST",
        422: "VALIDATION_ERROR",
        429: "RATE_LIMITED",
        503: "SERVICE_UNAVAILABLE",
    }
    return mapping.get(status_code, "INTERNAL_ERROR")


def _error_response(status_code: int, error: ErrorInfo) -> JSONResponse:
    body = ErrorResponse(error=error)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body.model_dump(exclude_none=True)),
    )


def _spec_error(code: str, message: str) -> ErrorInfo:
    spec = get_error_spec(code)
    return ErrorInfo(
        code=code,
        message=message,
        retryable=spec.get("retryable", False),
        suggested_fix=spec.get("suggested_fix"),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings

    # Startup
    store = create_job_store(settings)
    await store.initialize()

    storage = ArtifactStorage.from_settings(settings)
    pipeline = VideoPipeline.from_settings(settings, storage)

    notifiers: list[JobNotifier] = [websocket.JobProgressNotifier(app.state.websocket_manager, storage)]
    webhook: Optional[WebhookNotifier] = None
    if settings.notify_webhook_url:
        webhook = WebhookNotifier(settings.notify_webhook_url, storage=storage)
        notifiers.append(webhook)

    scheduler = JobScheduler(pipeline, store, settings, notifier=CompositeNotifier(notifiers))
    sweeper = RetentionSweeper.from_settings(settings, storage, scheduler)

    app.state.store = store
    app.state.storage = storage
    app.state.pipeline = pipeline
    app.state.scheduler = scheduler
    app.state.sweeper = sweeper

    await scheduler.restore()
    sweeper.start()
    logger.info(
        f"[APP] {settings.app_name} {settings.app_version} started "
        f"(video_enabled={settings.video_enabled}, captions_enabled={settings.captions_enabled})"
    )

    yield

    # Shutdown
    await sweeper.stop()
    await scheduler.shutdown()
    if webhook is not None:
        await webhook.close()
    await pipeline.close()
    await store.close()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.websocket_manager = websocket.WebSocketManager()

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PodclipError)
    async def podclip_exception_handler(request: Request, exc: PodclipError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
        return _error_response(exc.status_code, exc.to_error_info())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Build a human-readable message from the first validation error
        errors = exc.errors()
        if errors:
            first_error = errors[0]
            loc = " -> ".join(str(x) for x in first_error.get("loc", []))
            msg = first_error.get("msg", "Validation error")
            message = f"{loc}: {msg}" if loc else msg
        else:
            message = "Request validation failed"
        # Malformed bodies are client errors like any other validation failure
        return _error_response(400, _spec_error("VALIDATION_ERROR", message))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        code = _http_error_code(exc.status_code)
        return _error_response(exc.status_code, _spec_error(code, str(exc.detail)))

    # Global exception handler to ensure errors return proper JSON
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled exception: {exc}")
        return _error_response(500, _spec_error("INTERNAL_ERROR", "Internal server error"))

    # Routers
    app.include_router(jobs.router, tags=["jobs"])
    app.include_router(artifacts.router, tags=["artifacts"])
    app.include_router(websocket.router, tags=["websocket"])

    @app.get("/health")
    async def health_check() -> dict:
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "video_enabled": settings.video_enabled,
            "captions_enabled": settings.captions_enabled,
        }

    return app


app = create_app()

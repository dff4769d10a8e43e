from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.deps import SessionRegistry, build_log_api
from api.observability import (
    configure_logging,
    monotonic_ms,
    new_request_id,
    request_log_fields,
    reset_request_id,
    set_request_id,
)
from api.routes import router
from workout_core.config import get_settings
from workout_core.errors import TransientIOError, ValidationError
from workout_core.services.logging_api import WorkoutLogApi

logger = logging.getLogger(__name__)


def create_app(log_api: WorkoutLogApi | None = None) -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.sessions = SessionRegistry(settings, log_api or build_log_api(settings))
        logger.info("session_registry_initialized", extra={"ctx_app_env": settings.app_env})
        try:
            yield
        finally:
            app.state.sessions.clear()

    app = FastAPI(title="Circuit Session API", version="1.0.0", lifespan=lifespan)
    app.include_router(router)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": {"title": exc.title, "description": exc.description}})

    @app.exception_handler(TransientIOError)
    async def transient_io_error_handler(request: Request, exc: TransientIOError) -> JSONResponse:
        logger.warning("logging_api_failure", extra={"ctx_endpoint": exc.endpoint, "ctx_status_code": exc.status_code})
        return JSONResponse(
            status_code=502,
            content={"detail": {"message": str(exc), "endpoint": exc.endpoint, "retryable": True}},
        )

    @app.middleware("http")
    async def request_context_and_logging(request: Request, call_next: Callable) -> Response:
        header_name = settings.request_id_header_name or "X-Request-ID"
        request_id = (request.headers.get(header_name) or "").strip() or new_request_id()
        token = set_request_id(request_id)
        started_ms = monotonic_ms()
        client_ip = getattr(request.client, "host", None)
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = monotonic_ms() - started_ms
            logger.exception(
                "http_request_error",
                extra=request_log_fields(
                    method=request.method,
                    path=request.url.path,
                    status_code=500,
                    duration_ms=duration_ms,
                    client_ip=client_ip,
                ),
            )
            raise
        else:
            response.headers[header_name] = request_id
            duration_ms = monotonic_ms() - started_ms
            logger.info(
                "http_request",
                extra=request_log_fields(
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=duration_ms,
                    client_ip=client_ip,
                ),
            )
            return response
        finally:
            reset_request_id(token)

    return app


app = create_app()

############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# main.py: FastAPI application factory and entry point
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""FastAPI application factory.

``create_app`` builds the app; the lifespan owns the backend manager and
translation client so that nothing is constructed at import time.
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lingualink.app.api import api_router
from lingualink.app.core.balancer.manager import BackendManager
from lingualink.app.core.exceptions import (
    BackendsExhaustedError,
    ConfigurationError,
    PreconditionError,
)
from lingualink.app.logging_config import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)
from lingualink.app.services.translation import TranslationClient
from lingualink.app.settings import Settings, get_settings

logger = get_logger(__name__)


def build_lifespan(settings: Settings):
    """Lifespan that owns the backend manager and translation client."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        app.state.started_at = time.monotonic()

        # ConfigurationError here aborts startup
        manager = BackendManager.from_settings(settings)
        translator: Optional[TranslationClient] = None
        if settings.translation_enabled:
            translator = TranslationClient.from_settings(settings)

        app.state.manager = manager
        app.state.translator = translator
        await manager.start()
        logger.info(
            "lingualink_started",
            version=settings.app_version,
            backends=len(manager.registry),
            strategy=manager.balancer.strategy.value,
            translation_accounts=len(translator.pool) if translator else 0,
        )

        try:
            yield
        finally:
            await manager.stop()
            if translator is not None:
                await translator.close()
            logger.info("lingualink_stopped")

    return lifespan


class RequestContextMiddleware:
    """
    Raw ASGI middleware binding a request id into the log context.

    The id comes from an inbound X-Request-ID header or is generated, and is
    echoed back together with X-Response-Time-Ms. Being raw ASGI, it never
    moves the handler to another task, so a client disconnect does not
    cancel an executor mid-retry.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        inbound = {k.lower(): v for k, v in scope.get("headers", [])}
        request_id = inbound.get(b"x-request-id", b"").decode() or uuid.uuid4().hex
        started = time.perf_counter()
        bind_request_context(request_id=request_id, path=scope.get("path"))

        async def send_with_context(message):
            if message["type"] == "http.response.start":
                elapsed_ms = (time.perf_counter() - started) * 1000
                extra = [
                    (b"x-request-id", request_id.encode()),
                    (b"x-response-time-ms", f"{elapsed_ms:.1f}".encode()),
                ]
                message = {**message, "headers": [*message.get("headers", []), *extra]}
            await send(message)

        try:
            await self.app(scope, receive, send_with_context)
        finally:
            clear_request_context()


def _error_body(message: str, kind: str) -> dict:
    return {"error": {"message": message, "type": kind}}


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain exceptions that escape a route onto HTTP responses."""

    @app.exception_handler(ConfigurationError)
    async def configuration_error(request: Request, exc: ConfigurationError):
        logger.error("configuration_error", error=str(exc))
        return JSONResponse(status_code=503, content=_error_body(str(exc), "configuration_error"))

    @app.exception_handler(PreconditionError)
    async def precondition_error(request: Request, exc: PreconditionError):
        return JSONResponse(status_code=400, content=_error_body(str(exc), "precondition"))

    @app.exception_handler(BackendsExhaustedError)
    async def exhausted_error(request: Request, exc: BackendsExhaustedError):
        logger.warning("backends_exhausted", attempts=exc.attempts, error=str(exc.last_error))
        return JSONResponse(status_code=503, content=_error_body(str(exc), "exhausted"))

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("unhandled_exception", error=str(exc))
        return JSONResponse(
            status_code=500,
            content=_error_body("Internal server error", "server_error"),
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        description="Resilient multi-backend balancer and translation gateway",
        lifespan=build_lifespan(settings),
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Response-Time-Ms"],
    )
    app.add_middleware(RequestContextMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router)
    return app


def main():
    """Console entry point: serve ``create_app`` with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "lingualink.app.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

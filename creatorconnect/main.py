from __future__ import annotations

import logging
import sys
import traceback
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from creatorconnect.core.database import Collections, Database, ensure_indexes
from creatorconnect.core.errors import ConfigurationError, DatabaseConnectionError, ValidationError
from creatorconnect.core.logging_config import configure_logging
from creatorconnect.core.settings import Settings
from creatorconnect.core.time import iso_now
from creatorconnect.metrics import metrics_endpoint, metrics_middleware, set_app_info
from creatorconnect.routers.ai import router as ai_router
from creatorconnect.routers.notifications import router as notifications_router
from creatorconnect.routers.payments import router as payments_router
from creatorconnect.routers.subscriptions import router as subscriptions_router
from creatorconnect.routers.tiers import router as tiers_router
from creatorconnect.routers.webhooks import router as webhooks_router
from creatorconnect.services.container import Services

logger = logging.getLogger(__name__)

APP_NAME = "CreatorConnect API"
APP_VERSION = "1.0.0"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-DNS-Prefetch-Control": "off",
    "Cross-Origin-Opener-Policy": "same-origin",
}


async def security_headers_middleware(request: Request, call_next: Callable[[Request], Response]) -> Response:
    response = await call_next(request)
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    return response


def _error_body(message: str, **extra: Any) -> dict:
    body = {"success": False, "message": message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


def _stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def _install_error_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and request.scope.get("route") is None:
            return JSONResponse(status_code=404, content=_error_body("Route not found"))
        errors = exc.errors if isinstance(exc, ValidationError) and exc.errors else None
        stack = _stack(exc) if settings.is_development else None
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail), errors=errors, stack=stack),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(_: Request, exc: RequestValidationError):
        errors = []
        for err in exc.errors():
            loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
            errors.append({"field": ".".join(loc) or "body", "message": err.get("msg", "Invalid value")})
        return JSONResponse(status_code=400, content=_error_body("Validation failed", errors=errors))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        if settings.is_development:
            return JSONResponse(
                status_code=500, content=_error_body(str(exc) or "Internal Server Error", stack=_stack(exc))
            )
        return JSONResponse(status_code=500, content=_error_body("Internal Server Error"))


def create_app(settings: Optional[Settings] = None, db: Any = None) -> FastAPI:
    """
    Build the API.

    With `db` given (tests, scripts) the services are wired immediately
    against that handle; otherwise the lifespan boots through `boot()` and
    closes the client on shutdown.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database = None
        if getattr(app.state, "services", None) is None:
            database = boot(settings)
            ensure_indexes(database.db)
            app.state.services = Services.build(Collections.from_database(database.db), settings.default_currency)
        try:
            yield
        finally:
            if database is not None:
                database.close()

    app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.services = None
    if db is not None:
        ensure_indexes(db)
        app.state.services = Services.build(Collections.from_database(db), settings.default_currency)

    @app.get("/")
    async def index():
        return {"message": APP_NAME, "version": APP_VERSION, "status": "running"}

    @app.get("/api/health")
    async def health():
        return {"status": "OK", "timestamp": iso_now()}

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(security_headers_middleware)
    if settings.metrics_enabled:
        app.middleware("http")(metrics_middleware)
        set_app_info(app.title, app.version)
        app.get("/metrics", include_in_schema=False)(metrics_endpoint)

    _install_error_handlers(app, settings)

    app.include_router(tiers_router)
    app.include_router(payments_router)
    app.include_router(subscriptions_router)
    app.include_router(notifications_router)
    app.include_router(ai_router)
    app.include_router(webhooks_router)

    return app


def boot(settings: Settings) -> Database:
    """Validate configuration and open the database, or exit with status 1."""
    try:
        settings.validate()
    except ConfigurationError as exc:
        for name in exc.missing:
            logger.error("Missing required environment variable: %s", name)
        sys.exit(1)

    database = Database(settings)
    try:
        database.connect()
    except DatabaseConnectionError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    return database


def app_factory() -> FastAPI:
    """
    Entry point for `uvicorn --factory creatorconnect.main:app_factory`.

    Boots before uvicorn starts serving, so configuration and database
    failures exit with status 1 instead of uvicorn's startup-failure code.
    The client is closed with the process.
    """
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    database = boot(settings)
    logger.info("Environment: %s", settings.node_env or "development")
    return create_app(settings, db=database.db)


def run() -> None:
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    database = boot(settings)
    app = create_app(settings, db=database.db)
    logger.info("Server running on port %s", settings.port)
    logger.info("Environment: %s", settings.node_env or "development")
    try:
        uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    finally:
        database.close()


if __name__ == "__main__":
    run()

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.app.api.responses import error
from backend.app.api.v1.endpoints.health import router as health_router
from backend.app.api.v1.router import router as v1_router
from backend.app.core.config import get_settings
from backend.app.core.errors import AppError
from backend.app.core.logging_config import configure_logging, get_logger
from backend.app.db.immutability import register_immutability_listeners

logger = get_logger("api")


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Validation failed"
    first = errors[0]
    loc = first.get("loc") or ()
    if loc and loc[0] == "path":
        return "Invalid ID format"
    field = ".".join(str(part) for part in loc[1:])
    message = first.get("msg", "Invalid value")
    return f"{field}: {message}" if field else message


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError):
        return error(exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        return error(_validation_message(exc), 400)

    @app.exception_handler(IntegrityError)
    async def _integrity(request: Request, exc: IntegrityError):
        # Le détail du driver reste dans les logs
        logger.warning("integrity_error", extra={"path": request.url.path, "detail": str(exc.orig)})
        return error("A record with this value already exists.", 409)

    @app.exception_handler(StarletteHTTPException)
    async def _http(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error(f"Route {request.url.path} not found", 404)
        return error(str(exc.detail), exc.status_code)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("unhandled_error", extra={"path": request.url.path, "method": request.method})
        return error("Internal Server Error", 500)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(level=settings.log_level, fmt=settings.log_format)
    register_immutability_listeners()

    if settings.uses_dev_secret:
        logger.warning("dev_token_secret_in_use")

    app = FastAPI(title="Mini ERP", version="0.1.0")
    register_exception_handlers(app)
    app.include_router(health_router, tags=["health"])
    app.include_router(v1_router, prefix="/api")
    return app


app = create_app()

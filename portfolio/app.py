"""
FastAPI application entry point for the portfolio backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from portfolio.cache import CacheClient
from portfolio.config import Settings, get_settings
from portfolio.db import DbClient
from portfolio.dependencies import build_cache_client, build_db_client, build_services
from portfolio.errors import PortfolioError, ProcessingFailure, UnsupportedFormat
from portfolio.routes import router
from portfolio.schemas import HealthResponse

logger = logging.getLogger(__name__)


def _error_body(message: str, **extra) -> dict:
    body = {"success": False, "message": message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(PortfolioError)
    async def portfolio_error_handler(request: Request, exc: PortfolioError):
        errors = getattr(exc, "errors", None) or None
        if isinstance(exc, ProcessingFailure) and not isinstance(exc, UnsupportedFormat):
            logger.error(
                "Processing failure on %s %s: %s",
                request.method,
                request.url.path,
                exc.cause or exc.message,
            )
            detail = str(exc.cause) if settings.is_development and exc.cause else None
            return JSONResponse(
                status_code=exc.status_code,
                content=_error_body(exc.message, error=detail),
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.message, errors=errors),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": str(error["loc"][-1]) if error.get("loc") else "",
                "message": error.get("msg", "Invalid value"),
            }
            for error in exc.errors()
        ]
        message = errors[0]["message"] if errors else "Validation failed"
        return JSONResponse(status_code=400, content=_error_body(message, errors=errors))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail
        if exc.status_code == 404 and message == "Not Found":
            message = f"Not Found - {request.method} {request.url.path}"
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(message)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        detail = str(exc) if settings.is_development else None
        return JSONResponse(
            status_code=500,
            content=_error_body("Internal Server Error", error=detail),
        )


def create_app(
    settings: Optional[Settings] = None,
    *,
    db: Optional[DbClient] = None,
    cache: Optional[CacheClient] = None,
) -> FastAPI:
    """
    Builds the FastAPI app.

    Backends that are not injected are built from settings when the app
    starts, so importing this module opens no database or Redis
    connections.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_db = db if db is not None else build_db_client(settings)
        app_cache = cache if cache is not None else build_cache_client(settings)
        app.state.db = app_db
        app.state.cache = app_cache
        (
            app.state.project_service,
            app.state.contact_service,
            app.state.auth_service,
        ) = build_services(settings, app_db, app_cache)
        app_cache.connect()
        logger.info("Portfolio backend started (%s mode)", settings.app_env)
        try:
            yield
        finally:
            app_cache.close()
            app_db.close()
            logger.info("Portfolio backend stopped")

    app = FastAPI(title="Portfolio Backend", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    _register_exception_handlers(app, settings)
    app.include_router(router, prefix=settings.api_prefix)

    @app.get(f"{settings.api_prefix}/health", response_model=HealthResponse)
    def health(request: Request):
        state = request.app.state
        try:
            database = "CONNECTED" if state.db.ping() else "DISCONNECTED"
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            database = "DISCONNECTED"
        return {
            "status": "UP",
            "database": database,
            "cache": "CONNECTED" if state.cache.ping() else "DISABLED",
            "environment": settings.app_env,
        }

    return app


app = create_app()

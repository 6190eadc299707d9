"""
Dependency wiring for the FastAPI app.

`create_app` builds the backends once and keeps them on ``app.state``;
the ``get_*`` functions below hand them to route handlers via
``Depends``.
"""

from __future__ import annotations

import logging

from fastapi import Depends, Request

from portfolio.cache import CacheClient, InMemoryCache, NullCache, RedisCache
from portfolio.config import Settings
from portfolio.db import DbClient, InMemoryDbClient, SqlDbClient
from portfolio.services import AuthService, ContactService, ProjectService

logger = logging.getLogger(__name__)

SESSION_COOKIE = "jwt"


def build_db_client(settings: Settings) -> DbClient:
    if settings.use_in_memory_backends or not settings.database_url:
        logger.info("Using in-memory record store")
        return InMemoryDbClient()
    return SqlDbClient(settings.database_url)


def build_cache_client(settings: Settings) -> CacheClient:
    if settings.use_in_memory_backends:
        return InMemoryCache()
    if not settings.redis_url:
        logger.warning("REDIS_URL not provided - caching disabled")
        return NullCache()
    return RedisCache(url=settings.redis_url)


def build_services(
    settings: Settings, db: DbClient, cache: CacheClient
) -> tuple[ProjectService, ContactService, AuthService]:
    projects = ProjectService(
        db,
        cache,
        url_prefix=settings.api_prefix,
        cache_ttl=settings.cache_ttl_seconds,
    )
    contacts = ContactService(db)
    auth = AuthService(
        db,
        secret=settings.jwt_secret,
        expire_seconds=settings.jwt_expire_seconds,
    )
    return projects, contacts, auth


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_project_service(request: Request) -> ProjectService:
    return request.app.state.project_service


def get_contact_service(request: Request) -> ContactService:
    return request.app.state.contact_service


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def require_auth(
    request: Request, auth: AuthService = Depends(get_auth_service)
) -> str:
    """Auth gate: returns the session user id or raises a 401."""
    user_id = auth.verify(request.cookies.get(SESSION_COOKIE))
    logger.debug("Authenticated user ID: %s", user_id)
    return user_id


def require_project_write_auth(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    auth: AuthService = Depends(get_auth_service),
) -> str | None:
    if not settings.protect_project_writes:
        return None
    return require_auth(request, auth)

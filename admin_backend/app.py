"""
FastAPI application entry point for the admin backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from admin_backend.cache import InMemoryTtlCache
from admin_backend.config import get_settings
from admin_backend.dependencies import get_backend, get_settings_cache
from admin_backend.errors import AdminBackendError
from admin_backend.routes import router
from admin_backend.seed import seed_languages

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    backend = get_backend()
    cache = get_settings_cache()
    await backend.init_schema()
    if settings.seed_languages_on_startup or settings.use_in_memory_backends:
        await seed_languages(backend.languages)
    if isinstance(cache, InMemoryTtlCache):
        cache.start()
    logger.info(
        "Admin backend started (database=%s, storage=%s)",
        "memory" if settings.use_in_memory_backends else settings.database_type,
        "memory" if settings.use_in_memory_backends else settings.asset_management_tool,
    )
    try:
        yield
    finally:
        if isinstance(cache, InMemoryTtlCache):
            cache.stop()
        await backend.close()


async def handle_admin_error(request: Request, exc: AdminBackendError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.as_dict())


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    app = FastAPI(
        title="Crowdfunding Admin Backend", version="0.1.0", lifespan=lifespan
    )
    app.add_exception_handler(AdminBackendError, handle_admin_error)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from pathlib import Path

from fastapi import FastAPI, HTTPException
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from ecms.api.errors import register_api_exception_handlers
from ecms.api.media import router as media_router
from ecms.api.router import router as api_router
from ecms.db.session import check_database, close_engine, get_session_factory
from ecms.http.middleware import (
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    parse_skip_paths,
)
from ecms.logging_config import configure_logging, parse_redact_fields
from ecms.services.media.runtime import MediaRuntime
from ecms.settings import settings

logger = logging.getLogger(__name__)

configure_logging(
    level=settings.log_level,
    log_format=settings.log_format,
    redact_fields=parse_redact_fields(settings.log_redact_fields),
    include_uvicorn_access=settings.log_uvicorn_access,
)


@asynccontextmanager
async def lifespan(application: FastAPI):
    runtime = MediaRuntime.from_settings(settings, get_session_factory())
    application.state.media = runtime
    logger.info(
        "app.startup",
        extra={
            "event": "app.startup",
            "app_env": settings.app_env,
            "media_backend": runtime.blob_store.backend_name,
            "reclamation_enabled": settings.media_reclamation_enabled,
            "log_format": settings.log_format,
        },
    )
    await runtime.start()
    try:
        yield
    finally:
        await runtime.stop()
        application.state.media = None
        await close_engine()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
register_api_exception_handlers(app)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret_key,
    same_site="lax",
    https_only=settings.session_cookie_secure,
)
app.add_middleware(
    RequestLoggingMiddleware,
    log_requests=settings.log_requests,
    skip_paths=parse_skip_paths(settings.log_request_skip_paths),
)
app.add_middleware(
    SecurityHeadersMiddleware,
    enabled=settings.security_headers_enabled,
    x_content_type_options=settings.security_x_content_type_options,
    x_frame_options=settings.security_x_frame_options,
    referrer_policy=settings.security_referrer_policy,
    permissions_policy=settings.security_permissions_policy,
    cross_origin_resource_policy=settings.security_cross_origin_resource_policy,
)
app.include_router(api_router)
app.include_router(media_router)


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    if await check_database():
        return {"status": "ok"}
    raise HTTPException(status_code=500, detail="database unavailable")


def _configure_static_assets(application: FastAPI) -> None:
    static_dir = Path(settings.media_static_dir)
    if not static_dir.is_dir():
        return
    application.mount("/static", StaticFiles(directory=static_dir), name="static")


_configure_static_assets(app)

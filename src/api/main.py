"""FastAPI application entrypoint for ChefSocial."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Any, AsyncIterator, Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from src.core.config import get_settings
from src.core.logger import bind_request_context, clear_request_context, get_logger
from src.core.metrics import record_http_request, render_prometheus_metrics
from src.core.observability import init_sentry, sentry_scope
from src.core.runtime import load_runtime_config
from src.messaging.gateway import get_messaging_gateway
from src.messaging.router import router as sms_router
from src.orchestrator.manager import build_cleanup_scheduler
from src.storage.db import init_db, load_models
from src.storage.db import test_connection as test_db_connection
from src.storage.redis_client import test_connection as test_redis_connection
from src.submission.router import router as voice_router
from src.workflows.router import router as workflows_router


settings = get_settings()
logger = get_logger("chefsocial.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    load_models()
    if settings.auto_create_schema:
        init_db()
    sentry_enabled = init_sentry()

    cleanup_stop: Optional[asyncio.Event] = None
    cleanup_task: Optional[asyncio.Task] = None
    if settings.cleanup_scheduler_enabled:
        cleanup_stop = asyncio.Event()
        cleanup_task = asyncio.create_task(build_cleanup_scheduler().run_forever(cleanup_stop))

    logger.info(
        "application_startup",
        env=settings.env,
        version=settings.app_version,
        sentry_enabled=sentry_enabled,
        metrics_enabled=settings.metrics_enabled,
        ai_provider=settings.ai_provider,
        messaging_provider=settings.messaging_provider,
        cleanup_scheduler_enabled=settings.cleanup_scheduler_enabled,
    )
    try:
        yield
    finally:
        if cleanup_stop is not None:
            cleanup_stop.set()
        if cleanup_task is not None:
            await asyncio.gather(cleanup_task, return_exceptions=True)

        gateway = get_messaging_gateway()
        aclose = getattr(gateway, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.info("application_shutdown", env=settings.env)


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    started_at = perf_counter()
    request_id = request.headers.get("x-request-id", str(uuid4()))
    user_id = request.headers.get("x-user-id")
    request.state.request_id = request_id
    bind_request_context(request_id=request_id, user_id=user_id)

    response = None
    status_code = 500

    try:
        with sentry_scope(user_id=user_id, request_id=request_id):
            response = await call_next(request)
        status_code = int(response.status_code)
    finally:
        duration = perf_counter() - started_at
        if settings.metrics_enabled:
            record_http_request(
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_seconds=duration,
            )
        clear_request_context()

    response.headers["x-request-id"] = request_id
    return response


@app.get("/health")
def health() -> JSONResponse:
    db_ok, db_error = test_db_connection()
    redis_ok, redis_error = test_redis_connection()

    healthy = db_ok and redis_ok
    status = "ok" if healthy else "degraded"

    payload = {
        "status": status,
        "env": settings.env,
        "services": {
            "database": {"ok": db_ok, "error": db_error},
            "redis": {"ok": redis_ok, "error": redis_error},
        },
    }

    return JSONResponse(content=payload, status_code=200 if healthy else 503)


@app.get("/version")
def version() -> dict[str, Any]:
    runtime = load_runtime_config()
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "env": settings.env,
        "ai_provider": settings.ai_provider,
        "messaging_provider": settings.messaging_provider,
        "default_platforms": runtime.default_platforms,
        "platform_priority": runtime.platform_priority,
    }


@app.get("/metrics")
def metrics() -> PlainTextResponse:
    if not settings.metrics_enabled:
        return PlainTextResponse("metrics disabled\n", status_code=404)

    payload = render_prometheus_metrics(
        app_name=settings.app_name,
        app_version=settings.app_version,
        env=settings.env,
    )
    return PlainTextResponse(
        payload,
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


app.include_router(voice_router)
app.include_router(workflows_router)
app.include_router(sms_router)

from collections import defaultdict
import asyncio
from time import perf_counter
from typing import Annotated
import os
from uuid import uuid4

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.api.deps import get_local_store, get_store
from tableside.api.routes import admin, auth, chat, gifts, menu, orders, ws
from tableside.core.config import settings
from tableside.core.errors import StoreError, TablesideError
from tableside.core.logger import configure_logging
from tableside.db.session import Base, engine, get_db
from tableside.realtime.manager import manager
from tableside.services.menu import seed_default_products


logger = configure_logging()

app = FastAPI(
    title=settings.app_name,
    description="Restaurant table ordering with realtime chat and gifting",
    version="0.1.0",
)

metrics = {
    "requests_total": 0,
    "errors_total": 0,
    "latency_total_ms": 0.0,
    "by_path": defaultdict(
        lambda: {"count": 0, "errors": 0, "latency_total_ms": 0.0}
    ),
}


cors_origins_raw = os.getenv("BACKEND_CORS_ORIGINS", "")
cors_origins = settings.backend_cors_origins
if not cors_origins and settings.frontend_url:
    cors_origins = [settings.frontend_url]

logger.info(
    "CORS origins raw=%s parsed=%s",
    cors_origins_raw if cors_origins_raw else "NOT SET",
    cors_origins,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
    max_age=600,
)


@app.middleware("http")
async def tracing_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    start = perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        duration_ms = (perf_counter() - start) * 1000.0
        metrics["requests_total"] += 1
        metrics["errors_total"] += 1
        metrics["latency_total_ms"] += duration_ms
        path_metrics = metrics["by_path"][request.url.path]
        path_metrics["count"] += 1
        path_metrics["errors"] += 1
        path_metrics["latency_total_ms"] += duration_ms
        logger.exception(
            "Request failed id=%s method=%s path=%s duration_ms=%.2f",
            request_id,
            request.method,
            request.url.path,
            duration_ms,
        )
        raise

    duration_ms = (perf_counter() - start) * 1000.0
    metrics["requests_total"] += 1
    metrics["latency_total_ms"] += duration_ms
    path_metrics = metrics["by_path"][request.url.path]
    path_metrics["count"] += 1
    if response.status_code >= 500:
        metrics["errors_total"] += 1
        path_metrics["errors"] += 1
    path_metrics["latency_total_ms"] += duration_ms
    logger.info(
        "Request completed id=%s method=%s path=%s status=%s duration_ms=%.2f",
        request_id,
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    response.headers["X-Request-Id"] = request_id
    return response


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Content-Security-Policy"] = (
        "default-src 'self'; "
        "img-src 'self' data: https:; "
        "style-src 'self' 'unsafe-inline'; "
        "connect-src 'self' http: https: ws: wss:; "
        "font-src 'self' data: https:;"
    )
    return response


def _handle_async_exception(loop, context) -> None:
    message = context.get("message", "Async error")
    exc = context.get("exception")
    if exc:
        logger.error("Async error: %s", message, exc_info=exc)
    else:
        logger.error("Async error: %s", message)


@app.on_event("startup")
async def on_startup() -> None:
    try:
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(_handle_async_exception)
    except RuntimeError:
        logger.warning("No running event loop during startup")

    db_url = make_url(settings.database_dsn)
    logger.info(
        "DB config driver=%s host=%s database=%s",
        db_url.get_backend_name(),
        db_url.host,
        db_url.database,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if settings.seed_menu:
        try:
            await seed_default_products(get_store())
        except StoreError:
            logger.error("Menu seed failed", exc_info=True)


@app.exception_handler(TablesideError)
async def tableside_error_handler(request: Request, exc: TablesideError):
    if exc.status_code >= 500:
        logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("Rejected %s %s status=%s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(auth.router)
app.include_router(menu.router)
app.include_router(chat.router)
app.include_router(gifts.router)
app.include_router(orders.router)
app.include_router(admin.router)
app.include_router(ws.router)


@app.get("/health")
async def health() -> dict[str, object]:
    local = get_local_store()
    return {
        "status": "ok",
        "local_store": local.stats(),
        "ws_connections": manager.count(),
    }


@app.get("/health/db")
async def health_db(db: Annotated[AsyncSession, Depends(get_db)]):
    try:
        result = await db.execute(select(1))
        return {"status": "ok", "database": str(result.scalar())}
    except SQLAlchemyError as e:
        logger.exception("DB health check failed")
        return JSONResponse(status_code=500, content={"status": "error", "error": str(e)})


@app.get("/metrics")
async def get_metrics() -> dict[str, object]:
    by_path = {
        path: {
            "count": data["count"],
            "errors": data["errors"],
            "avg_latency_ms": (
                data["latency_total_ms"] / data["count"] if data["count"] else 0.0
            ),
        }
        for path, data in metrics["by_path"].items()
    }
    return {
        "requests_total": metrics["requests_total"],
        "errors_total": metrics["errors_total"],
        "avg_latency_ms": (
            metrics["latency_total_ms"] / metrics["requests_total"]
            if metrics["requests_total"]
            else 0.0
        ),
        "by_path": by_path,
    }

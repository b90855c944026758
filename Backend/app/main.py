# Backend/app/main.py
from __future__ import annotations

import sys
import uuid
from pathlib import Path

# `uvicorn app.main:app` from a checkout: make api.*, app.* and services.* importable.
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request

from app.config import settings
from app.core.logging import bind_request_id, clear_log_context, configure_logging, logger
from services.article_store import get_article_store
from services.db_service import close_db_pool, init_db_pool

from api.routers.articles import router as articles_router

configure_logging(service_name="api")

app = FastAPI(title="Latest10 - Backend", version=settings.APP_VERSION)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind ``X-Request-Id`` (given or generated) to the log context and echo it."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        req_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        bind_request_id(req_id)
        logger.info("request_started", method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
            logger.info("request_ended", status_code=response.status_code)
            response.headers["X-Request-Id"] = req_id
            return response
        finally:
            clear_log_context()


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS", "HEAD"],
    allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
    expose_headers=["X-Request-Id"],
)
app.add_middleware(RequestIdMiddleware)


@app.on_event("startup")
async def _open_article_store() -> None:
    if settings.ARTICLE_STORE_BACKEND == "postgres":
        await init_db_pool()
        await get_article_store().ensure_schema()
    logger.info("article_store_ready", backend=settings.ARTICLE_STORE_BACKEND)


@app.on_event("shutdown")
async def _close_article_store() -> None:
    if settings.ARTICLE_STORE_BACKEND == "postgres":
        await close_db_pool()


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=dict(exc.headers or {}),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.get("/")
async def root() -> dict:
    return {"ok": True, "app": "Latest10 Backend", "version": settings.APP_VERSION}


@app.head("/")
async def root_head() -> Response:
    return Response(status_code=200)


@app.get("/health", response_class=PlainTextResponse)
async def health() -> str:
    return "ok"


app.include_router(articles_router)

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from ai_chat.api.chat import CORS_HEADERS
from ai_chat.api.router import api_router
from ai_chat.clients import close_clients
from ai_chat.config import settings
from ai_chat.logging_config import setup_logging
from ai_chat.middleware.logging import RequestLoggingMiddleware

setup_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: startup and shutdown hooks.

    Warns at startup when credentials are missing; requests then fail with 503
    rather than the process refusing to start.

    Args:
        application: The FastAPI application instance (unused directly but
            required by the lifespan protocol).
    """
    if not settings.llm_configured:
        logger.warning("llm_not_configured", setting="ANTHROPIC_API_KEY")
    if not settings.supabase_configured:
        logger.warning("supabase_not_configured", settings=["SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"])

    yield
    await close_clients()


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework HTTP errors (404, 405, ...) as ``{"error": ...}``."""
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        message = "Method not allowed"
    else:
        message = str(exc.detail)
    headers = {**CORS_HEADERS, **(exc.headers or {})}
    return JSONResponse({"error": message}, status_code=exc.status_code, headers=headers)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path)
    return JSONResponse(
        {"error": "Internal server error"},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        headers=CORS_HEADERS,
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        A fully configured FastAPI instance with middleware and routers applied.
    """
    application = FastAPI(
        title="Learn FM AI Chat",
        description="Authenticated, quota-limited RAG proxy in front of the LLM provider",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    Instrumentator().instrument(application).expose(application, endpoint="/metrics")

    application.add_exception_handler(StarletteHTTPException, http_exception_handler)
    application.add_exception_handler(Exception, unhandled_exception_handler)

    # Middleware (order matters: last added is first executed)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",")],
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["*"],
    )
    application.add_middleware(RequestLoggingMiddleware)

    # Routers
    application.include_router(api_router)

    return application


app = create_app()

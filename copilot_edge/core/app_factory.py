"""Application factory."""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import time
from typing import Dict, Any

from copilot_edge.core.config import settings
from copilot_edge.core.errors import CircuitOpenError, EdgeError, RateLimitError
from copilot_edge.core.logging import setup_logging, get_logger
from copilot_edge.core.lifecycle import lifespan
from copilot_edge.api import admin, chat, health, metrics

# Set up logging (should be done early)
setup_logging(settings.log_level, settings.log_format)
logger = get_logger(__name__)

POWERED_BY = {"X-Powered-By": "CopilotEdge"}


def register_exception_handlers(app: FastAPI) -> None:
    """Map pipeline errors to ``{"error", "type"}`` JSON bodies."""

    @app.exception_handler(EdgeError)
    async def edge_error_handler(request: Request, exc: EdgeError):
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__}: {exc.message}")
        else:
            logger.info(f"{type(exc).__name__}: {exc.message}")

        headers = dict(POWERED_BY)
        if isinstance(exc, (RateLimitError, CircuitOpenError)):
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "type": "APIError", "status": 500},
            headers=POWERED_BY,
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    logger.info(f"Creating FastAPI app with api_prefix: {settings.api_prefix}")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add request timing middleware
    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        return response

    register_exception_handlers(app)

    # Include routers
    app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
    app.include_router(chat.router, prefix=settings.api_prefix, tags=["chat"])
    app.include_router(metrics.router, prefix=settings.api_prefix, tags=["metrics"])
    app.include_router(admin.router, prefix=settings.api_prefix, tags=["admin"])

    @app.get("/")
    async def root() -> Dict[str, Any]:
        """Root endpoint."""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "status": "operational",
            "model": settings.model,
            "docs": f"{settings.api_prefix}/docs",
        }

    return app

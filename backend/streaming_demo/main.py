"""
FastAPI application entry point for the Streaming Demo.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.demo import router as demo_router
from .api.health import router as health_router
from .core.config import get_settings
from .core.exceptions import AppError

logging.basicConfig(level=logging.INFO)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Log startup configuration and shutdown."""
    settings = get_settings()

    logger.info(
        "Starting Streaming Demo",
        environment=settings.environment,
        default_model=settings.default_llm_model,
        upstream_configured=settings.upstream_configured,
    )
    if not settings.upstream_configured:
        logger.warning(
            "DASHSCOPE_API_KEY not set - /llm-stream and /sse-workflow will report an error"
        )

    yield

    logger.info("Streaming Demo stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Streaming Demo API",
        description="Buffered responses, HTTP streaming and server-sent events",
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Security middleware - only in production
    if settings.is_production:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=settings.allowed_hosts,
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        """
        Handle custom AppError exceptions raised by buffered routes.

        Streaming routes render errors inline instead, since their status
        line is already sent.
        """
        error_dict = exc.to_dict()

        logger.error(
            "Application error occurred",
            **{**error_dict, "request_path": request.url.path, "method": request.method},
        )

        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error_type": exc.error_type},
        )

    app.include_router(health_router, prefix="/api", tags=["health"])
    app.include_router(demo_router)

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "streaming_demo.main:app",
        host="0.0.0.0",  # nosec B104 - Required for Docker container
        port=8000,
        reload=settings.environment == "development",
        log_config=None,
    )

"""
Health check endpoints for monitoring and connectivity verification.
"""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends

from .. import __version__
from ..core.config import Settings, get_settings

logger = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health_check(settings: Settings = Depends(get_settings)) -> dict[str, Any]:
    """
    Health check endpoint.

    The service has no databases; it reports whether the upstream LLM
    credential is configured. Missing credentials degrade only the LLM
    routes, so the status is "degraded" rather than an error.
    """
    upstream_configured = settings.upstream_configured

    health_response = {
        "status": "ok" if upstream_configured else "degraded",
        "environment": settings.environment,
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "configuration": {
            "upstream_configured": upstream_configured,
            "default_model": settings.default_llm_model,
        },
    }

    if not upstream_configured:
        logger.warning(
            "Health check degraded",
            reason="dashscope_api_key not configured",
        )

    return health_response


@router.get("/health/live")
async def liveness_check() -> dict[str, Any]:
    """
    Kubernetes liveness probe endpoint.

    Simple check that the application is running.
    """
    return {"alive": True, "status": "ok"}

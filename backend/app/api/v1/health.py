from fastapi import APIRouter, Depends, HTTPException, status
from typing import Dict, Any
from datetime import datetime

from .chatbot import get_dialog_engine
from ...core.config import settings
from ...core.logging import get_logger
from triage.conversation.dialog_flow import DialogFlowEngine

logger = get_logger(__name__)
router = APIRouter()


@router.get("/health", summary="Health Check")
async def health_check() -> Dict[str, Any]:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "service": settings.PROJECT_NAME,
        "version": "0.1.0",
        "environment": settings.ENVIRONMENT
    }


@router.get("/ready", summary="Readiness Check")
async def readiness_check(
    engine: DialogFlowEngine = Depends(get_dialog_engine)
) -> Dict[str, Any]:
    """Readiness check: the flow graph is loaded and has an entry node."""
    engine_status = await engine.health_check()

    if engine_status["healthy"]:
        logger.info(f"Dialog engine: OK ({engine_status['loaded_nodes']} nodes)")
    else:
        logger.error(f"Dialog engine not ready: entry node {engine_status['entry_node']!r} missing")

    response_data = {
        "status": "ready" if engine_status["healthy"] else "not_ready",
        "timestamp": datetime.utcnow().isoformat(),
        "checks": {
            "flow_graph": engine_status["healthy"],
            "loaded_nodes": engine_status["loaded_nodes"],
            "active_sessions": engine_status["active_sessions"],
            "pending_notifications": engine_status["pending_notifications"]
        },
        "service": settings.PROJECT_NAME,
        "environment": settings.ENVIRONMENT
    }

    if not engine_status["healthy"]:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=response_data
        )

    return response_data


@router.get("/version", summary="Version Information")
async def version_info() -> Dict[str, Any]:
    """Get version and build information."""
    return {
        "service": settings.PROJECT_NAME,
        "version": "0.1.0",
        "api_version": settings.API_V1_STR,
        "environment": settings.ENVIRONMENT,
        "debug": settings.DEBUG,
        "model": settings.LLM_MODEL,
        "timestamp": datetime.utcnow().isoformat()
    }

"""Liveness and readiness probes for the gateway process itself."""
from typing import Any, Dict

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok", "service": "api-gateway"}


@router.get("/health/ready")
async def ready(request: Request) -> Dict[str, Any]:
    """Ready once startup has built the downstream client and forwarder."""
    state = request.app.state
    is_ready = hasattr(state, "downstream") and hasattr(state, "forwarder")
    return {"status": "ready" if is_ready else "starting", "ready": is_ready}

"""API Gateway routing configuration.

Routes answered by the gateway itself rather than forwarded.
"""
import asyncio
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
import structlog

from ..dependencies import get_downstream_client, get_registry
from ..downstream import DownstreamClient, DownstreamError, ErrorResponseError
from ..middleware.auth import require_user
from ..proxy import Service, ServiceRegistry

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Gateway"])


# Sample data served by the protected demo route
POSTS: List[Dict[str, str]] = [
    {"username": "Kyle", "title": "Post 1"},
    {"username": "Jim", "title": "Post 2"},
]


@router.get("/posts")
async def get_posts(user: Dict[str, Any] = Depends(require_user)) -> List[Dict[str, str]]:
    """Posts belonging to the authenticated user."""
    return [post for post in POSTS if post["username"] == user.get("name")]


@router.get("/gateway/services")
async def list_services(registry: ServiceRegistry = Depends(get_registry)) -> Dict[str, Any]:
    """List all registered backend services."""
    return {
        "services": list(registry.services.keys()),
        "count": len(registry.services),
    }


@router.get("/gateway/health")
async def check_services_health(
    registry: ServiceRegistry = Depends(get_registry),
    client: DownstreamClient = Depends(get_downstream_client),
) -> Dict[str, Any]:
    """Check health of all backend services."""
    async def check_service(service: Service) -> Dict[str, Any]:
        try:
            response = await client.request("GET", f"{service.base_url}/health")
            return {
                "name": service.name,
                "status": "healthy",
                "code": response.status_code,
            }
        except ErrorResponseError as e:
            return {
                "name": service.name,
                "status": "unhealthy",
                "code": e.status_code,
            }
        except DownstreamError:
            logger.warning("service_health_unavailable", service=service.name)
            return {
                "name": service.name,
                "status": "unavailable",
            }

    # Check all services concurrently
    results = await asyncio.gather(
        *(check_service(service) for service in registry.services.values())
    )

    healthy_count = sum(1 for r in results if r["status"] == "healthy")

    return {
        "services": list(results),
        "total": len(results),
        "healthy": healthy_count,
        "status": "healthy" if healthy_count == len(results) else "degraded",
    }


@router.get("/gateway/user")
async def current_identity(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """Get the identity attached to the current request."""
    return {
        "user": user,
        "authenticated": True,
    }

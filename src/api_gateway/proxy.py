"""Request forwarding to backend services.

Route handlers name the owning service and the downstream path; the
forwarder relays the downstream status and body back unchanged.
"""
import json
import time
from dataclasses import dataclass
from typing import Dict, Optional

import structlog
from fastapi import Request, Response

from .config.settings import Settings
from .downstream import DownstreamClient, DownstreamError, classify_failure
from .errors import UpstreamApplicationError
from .metrics import record_proxy_request

logger = structlog.get_logger(__name__)

# Request headers passed through to the downstream service
FORWARDED_HEADERS = ("content-type", "accept", "accept-language")

USER_DATA_HEADER = "x-user-data"


@dataclass(frozen=True)
class Service:
    """A backend service reachable through the gateway."""

    name: str
    display_name: str
    base_url: str


class ServiceRegistry:
    """Registry of backend services and their URLs."""

    def __init__(self, settings: Settings):
        self.services: Dict[str, Service] = {
            "auth": Service("auth", "Authentication", settings.auth_service_url),
            "users": Service("users", "Users", settings.users_service_url),
        }

    def get(self, name: str) -> Service:
        """Get a registered service.

        Raises:
            KeyError: Unknown service name
        """
        return self.services[name]

    def build_url(self, name: str, path: str) -> str:
        """Join a service base URL and a downstream path."""
        return f"{self.get(name).base_url}/{path.lstrip('/')}"


class RouteForwarder:
    """Forwards gateway requests to backend services.

    Handles:
    - Target URL construction from the service registry
    - Internal API key and identity headers
    - Verbatim relay of downstream status and body
    - Gateway-authored 500 when the downstream is unreachable
    """

    def __init__(self, client: DownstreamClient, registry: ServiceRegistry):
        self.client = client
        self.registry = registry

    async def forward(
        self,
        request: Request,
        service_name: str,
        path: str,
        method: Optional[str] = None,
        body: Optional[bytes] = None,
    ) -> Response:
        """Forward request to a backend service.

        Args:
            request: Original request
            service_name: Registry key of the target service
            path: Path on the target service
            method: Override of the inbound method
            body: Already-read request body; read from ``request`` if omitted

        Returns:
            Response relayed from the backend, or a gateway error response
        """
        service = self.registry.get(service_name)
        target_url = self.registry.build_url(service_name, path)
        method = method or request.method

        if request.url.query:
            target_url = f"{target_url}?{request.url.query}"

        if body is None:
            body = await request.body()
        headers = self._build_headers(request)

        logger.info(
            "proxy_request",
            method=method,
            path=request.url.path,
            service=service.name,
            target=target_url,
        )

        start_time = time.perf_counter()
        try:
            downstream = await self.client.request(
                method,
                target_url,
                content=body or None,
                headers=headers,
            )
        except DownstreamError as e:
            error = classify_failure(e, service.display_name)
            duration = time.perf_counter() - start_time
            if isinstance(error, UpstreamApplicationError):
                logger.info(
                    "proxy_downstream_error",
                    service=service.name,
                    target=target_url,
                    status=error.status_code,
                )
            else:
                logger.error(
                    "proxy_service_unavailable",
                    service=service.name,
                    target=target_url,
                    error=str(e),
                )
            record_proxy_request(service.name, error.status_code, duration)
            return error.to_response()

        duration = time.perf_counter() - start_time
        record_proxy_request(service.name, downstream.status_code, duration)
        logger.info(
            "proxy_response",
            path=request.url.path,
            service=service.name,
            status=downstream.status_code,
            response_size=len(downstream.content),
        )

        return Response(
            content=downstream.content,
            status_code=downstream.status_code,
            headers=downstream.headers,
            media_type=downstream.content_type,
        )

    def _build_headers(self, request: Request) -> Dict[str, str]:
        headers = {
            name: request.headers[name]
            for name in FORWARDED_HEADERS
            if name in request.headers
        }

        headers["X-Forwarded-For"] = self._get_client_ip(request)
        headers["X-Forwarded-Proto"] = request.url.scheme

        correlation_id = getattr(request.state, "correlation_id", None)
        if correlation_id:
            headers["X-Correlation-ID"] = correlation_id

        user = getattr(request.state, "user", None)
        if user is not None:
            headers[USER_DATA_HEADER] = json.dumps(user, separators=(",", ":"))

        return headers

    def _get_client_ip(self, request: Request) -> str:
        """Get client IP from request."""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

        if request.client:
            return request.client.host

        return "unknown"

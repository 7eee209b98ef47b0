"""Authentication middleware for API Gateway.

Validates bearer tokens on protected routes against the auth service and
attaches the returned user record to ``request.state.user``. This is the
only place tokens are checked; handlers read the attached identity.
"""
from typing import Any, Dict, Iterable, Optional, Tuple

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from ..downstream import DownstreamClient, Invalid, TransportFailure, Valid, ValidationResult
from ..errors import ClientAuthError, GatewayError, InvalidTokenError, UpstreamUnavailableError
from ..metrics import record_token_validation

logger = structlog.get_logger(__name__)

# Route prefixes that require a validated token
PROTECTED_ROUTES: Tuple[str, ...] = (
    "/posts",
    "/users",
    "/gateway/user",
)

AUTH_SERVICE_NAME = "Authentication"


def extract_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    """Return the token from ``Bearer <token>``, or None if unusable."""
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) < 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware for bearer-token authentication.

    Protected requests end in one of four states: authorized (identity
    attached, request continues), 401 (no usable token), 403 (token
    rejected) or 500 (auth service unavailable).
    """

    def __init__(
        self,
        app,
        client: DownstreamClient,
        protected_routes: Iterable[str] = PROTECTED_ROUTES,
    ):
        super().__init__(app)
        self.client = client
        self.protected_routes = tuple(protected_routes)

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path

        if request.method == "OPTIONS" or not self._is_protected_route(path):
            return await call_next(request)

        token = extract_bearer_token(request.headers.get("Authorization"))
        if token is None:
            logger.info("auth_missing_token", path=path)
            record_token_validation("missing_token")
            return ClientAuthError().to_response()

        result = await self.client.validate_token(token)
        if not isinstance(result, Valid):
            return self._reject(result, path).to_response()

        request.state.user = result.identity
        record_token_validation("authorized")
        logger.debug("request_authenticated", path=path)

        return await call_next(request)

    def _is_protected_route(self, path: str) -> bool:
        """Check if route requires a token."""
        for route in self.protected_routes:
            if path == route or path.startswith(route.rstrip("/") + "/"):
                return True
        return False

    def _reject(self, result: ValidationResult, path: str) -> GatewayError:
        if isinstance(result, Invalid):
            logger.info("auth_invalid_token", path=path, reason=result.reason)
            record_token_validation("invalid_token")
            return InvalidTokenError()
        if isinstance(result, TransportFailure):
            logger.error(
                "auth_service_error",
                path=path,
                cause=result.cause,
                status=result.status_code,
            )
            record_token_validation("unavailable")
            return UpstreamUnavailableError(AUTH_SERVICE_NAME)
        raise TypeError(f"Unhandled validation result: {type(result).__name__}")


def get_current_user(request: Request) -> Optional[Dict[str, Any]]:
    """Get current user from request state (non-failing).

    Returns None if the route is not protected.
    """
    return getattr(request.state, "user", None)


async def require_user(request: Request) -> Dict[str, Any]:
    """Dependency returning the identity attached by ``AuthMiddleware``.

    Usage:
        @router.get("/protected")
        async def protected_route(user: dict = Depends(require_user)):
            return {"name": user["name"]}
    """
    user = get_current_user(request)
    if user is None:
        logger.warning("identity_missing", path=request.url.path)
        raise ClientAuthError()
    return user

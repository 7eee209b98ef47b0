"""Gateway error taxonomy.

Every downstream failure is translated into one of these before it reaches
the caller. Only the classified message is sent to the client.
"""
from typing import Dict, Optional

from fastapi import status
from fastapi.responses import JSONResponse, Response


class GatewayError(Exception):
    """Base exception for errors the gateway reports to its caller."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal gateway error"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_response(self) -> Response:
        """Render as the JSON body sent to the caller."""
        return JSONResponse(status_code=self.status_code, content={"error": self.message})


class ClientAuthError(GatewayError):
    """Missing or malformed bearer token."""

    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authorization header required"


class InvalidTokenError(GatewayError):
    """The auth service rejected the token."""

    status_code = status.HTTP_403_FORBIDDEN
    message = "Invalid token"


class MissingUploadError(GatewayError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "No file uploaded"


class PayloadTooLargeError(GatewayError):
    status_code = 413
    message = "File too large"


class UpstreamUnavailableError(GatewayError):
    """A downstream service could not be reached or answered unusably."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, service: str):
        self.service = service
        super().__init__(f"{service} service unavailable")


class UpstreamApplicationError(GatewayError):
    """A downstream service answered with a non-2xx status.

    Relayed to the caller unchanged.
    """

    def __init__(
        self,
        status_code: int,
        content: bytes,
        content_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.status_code = status_code
        self.content = content
        self.content_type = content_type
        self.headers = dict(headers or {})
        super().__init__(f"Downstream responded with {status_code}")

    def to_response(self) -> Response:
        return Response(
            content=self.content,
            status_code=self.status_code,
            headers=self.headers,
            media_type=self.content_type,
        )

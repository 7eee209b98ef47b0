"""HTTP client for the downstream services.

Shared by the auth middleware and the route forwarder. Every call carries
the internal API key and a bounded timeout. Failures are raised as one of
two classes so callers can tell "downstream rejected" from "downstream
unreachable":

- ``NoResponseError``: connect error, timeout, any transport failure
- ``ErrorResponseError``: the downstream answered with a non-2xx status
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

import httpx
import structlog

from .config.settings import Settings
from .errors import GatewayError, UpstreamApplicationError, UpstreamUnavailableError

logger = structlog.get_logger(__name__)

SERVICE_KEY_HEADER = "x-api-key"

# Response headers relayed back to the caller along with status and body
RELAYED_RESPONSE_HEADERS = ("location", "retry-after")


@dataclass(frozen=True)
class DownstreamResponse:
    """Status, raw body, content type and relayed headers of a downstream reply."""

    status_code: int
    content: bytes = b""
    content_type: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        return json.loads(self.content)


class DownstreamError(Exception):
    """Base class for classified downstream call failures."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(message)


class NoResponseError(DownstreamError):
    """The downstream never produced a response."""

    def __init__(self, url: str, reason: str):
        self.reason = reason
        super().__init__(url, f"No response from {url}: {reason}")


class ErrorResponseError(DownstreamError):
    """The downstream answered with a non-2xx status."""

    def __init__(self, url: str, response: DownstreamResponse):
        self.response = response
        super().__init__(url, f"{url} responded with {response.status_code}")

    @property
    def status_code(self) -> int:
        return self.response.status_code


# Token validation outcomes


@dataclass(frozen=True)
class Valid:
    identity: Dict[str, Any]


@dataclass(frozen=True)
class Invalid:
    reason: str = "rejected"


@dataclass(frozen=True)
class TransportFailure:
    cause: str
    status_code: Optional[int] = field(default=None)


ValidationResult = Union[Valid, Invalid, TransportFailure]


def classify_failure(exc: DownstreamError, service: str) -> GatewayError:
    """Map a downstream failure onto the gateway error taxonomy.

    Args:
        exc: Failure raised by ``DownstreamClient.request``
        service: Display name used in the unavailable message

    Returns:
        ``UpstreamApplicationError`` carrying the downstream status and body,
        or ``UpstreamUnavailableError`` when nothing came back
    """
    if isinstance(exc, ErrorResponseError):
        return UpstreamApplicationError(
            exc.response.status_code,
            exc.response.content,
            exc.response.content_type,
            exc.response.headers,
        )
    if isinstance(exc, NoResponseError):
        return UpstreamUnavailableError(service)
    raise TypeError(f"Unclassified downstream failure: {type(exc).__name__}")


def decode_validation(response: DownstreamResponse) -> ValidationResult:
    """Decode a 2xx ``/validate-token`` reply."""
    try:
        payload = response.json()
    except ValueError:
        return TransportFailure(cause="malformed_body", status_code=response.status_code)

    if not isinstance(payload, dict):
        return TransportFailure(cause="malformed_body", status_code=response.status_code)

    valid = payload.get("valid")
    if valid is True:
        user = payload.get("user")
        if not isinstance(user, dict):
            return TransportFailure(cause="missing_user", status_code=response.status_code)
        return Valid(identity=user)
    if valid is False:
        return Invalid(reason="rejected")
    return TransportFailure(cause="missing_valid_flag", status_code=response.status_code)


class DownstreamClient:
    """Outbound HTTP calls to the auth and users services."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.auth_service_url = settings.auth_service_url
        self.users_service_url = settings.users_service_url
        self.timeout = settings.downstream_timeout
        self._service_key = settings.internal_api_key
        self._transport = transport

        # Persistent HTTP client
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def _headers(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        headers = dict(extra or {})
        headers[SERVICE_KEY_HEADER] = self._service_key.get_secret_value()
        return headers

    async def request(
        self,
        method: str,
        url: str,
        *,
        content: Optional[bytes] = None,
        json_body: Any = None,
        params: Optional[Union[str, Mapping[str, Any]]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> DownstreamResponse:
        """Issue one call to a downstream service.

        Args:
            method: HTTP method
            url: Absolute target URL
            content: Raw request body
            json_body: JSON-serialisable body (ignored when ``content`` is set)
            params: Query string or mapping
            headers: Extra headers; the service key is always added

        Returns:
            The downstream reply when its status is 2xx

        Raises:
            NoResponseError: Transport failure or timeout
            ErrorResponseError: The downstream answered with a non-2xx status
        """
        client = await self._get_client()

        kwargs: Dict[str, Any] = {"headers": self._headers(headers)}
        if content is not None:
            kwargs["content"] = content
        elif json_body is not None:
            kwargs["json"] = json_body
        if params:
            kwargs["params"] = params

        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("downstream_timeout", method=method, target=url)
            raise NoResponseError(url, "timeout") from e
        except httpx.HTTPError as e:
            logger.warning(
                "downstream_transport_error",
                method=method,
                target=url,
                error_type=type(e).__name__,
            )
            raise NoResponseError(url, type(e).__name__) from e

        result = DownstreamResponse(
            status_code=response.status_code,
            content=response.content,
            content_type=response.headers.get("content-type"),
            headers={
                name: response.headers[name]
                for name in RELAYED_RESPONSE_HEADERS
                if name in response.headers
            },
        )

        if not response.is_success:
            logger.info(
                "downstream_error_response",
                method=method,
                target=url,
                status=response.status_code,
            )
            raise ErrorResponseError(url, result)

        return result

    async def validate_token(self, token: str) -> ValidationResult:
        """Ask the auth service whether ``token`` is valid.

        A single attempt. HTTP 403 from the auth service counts as an invalid
        token; every other failure is a ``TransportFailure``.
        """
        url = f"{self.auth_service_url}/validate-token"
        try:
            response = await self.request("POST", url, json_body={"token": token})
        except ErrorResponseError as e:
            if e.status_code == 403:
                return Invalid(reason="forbidden")
            return TransportFailure(cause="error_status", status_code=e.status_code)
        except NoResponseError as e:
            return TransportFailure(cause=e.reason)

        return decode_validation(response)

"""Prometheus metrics for the gateway.

Three families: inbound requests, forwarded calls per downstream service,
and bearer-token validation outcomes on protected routes.
"""
import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, Info, generate_latest
import structlog

logger = structlog.get_logger(__name__)

LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10)

GATEWAY_INFO = Info("api_gateway_build", "Gateway version and service name")

INBOUND_REQUESTS = Counter(
    "api_gateway_requests_total",
    "Inbound requests by method, normalised path and response status",
    ["method", "path", "status"],
)
INBOUND_LATENCY = Histogram(
    "api_gateway_request_duration_seconds",
    "Time spent answering inbound requests",
    ["method", "path"],
    buckets=LATENCY_BUCKETS,
)

FORWARDED_CALLS = Counter(
    "api_gateway_proxy_requests_total",
    "Requests forwarded to a downstream service, by the status relayed to the caller",
    ["service", "status"],
)
FORWARDED_LATENCY = Histogram(
    "api_gateway_proxy_duration_seconds",
    "Round trip of a forwarded request to its downstream service",
    ["service"],
    buckets=LATENCY_BUCKETS,
)

# authorized | missing_token | invalid_token | unavailable
TOKEN_VALIDATIONS = Counter(
    "api_gateway_token_validations_total",
    "Bearer token checks on protected routes, by outcome",
    ["outcome"],
)

METRICS_CONTENT_TYPE = CONTENT_TYPE_LATEST

_UUID_SEGMENT = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    flags=re.IGNORECASE,
)
_NUMERIC_SEGMENT = re.compile(r"/\d+(?=/|$)")


def init_metrics(version: str) -> None:
    GATEWAY_INFO.info({"version": version, "service": "api-gateway"})
    logger.info("metrics_initialized", version=version)


def get_metrics() -> bytes:
    """Render the default registry in Prometheus text format."""
    return generate_latest()


def record_request(method: str, path: str, status: int, duration: float) -> None:
    path = normalize_path(path)
    INBOUND_REQUESTS.labels(method=method, path=path, status=str(status)).inc()
    INBOUND_LATENCY.labels(method=method, path=path).observe(duration)


def record_proxy_request(service: str, status: int, duration: float) -> None:
    FORWARDED_CALLS.labels(service=service, status=str(status)).inc()
    FORWARDED_LATENCY.labels(service=service).observe(duration)


def record_token_validation(outcome: str) -> None:
    TOKEN_VALIDATIONS.labels(outcome=outcome).inc()


def normalize_path(path: str) -> str:
    """Collapse UUID and numeric path segments so label cardinality stays bounded."""
    path = _UUID_SEGMENT.sub("{uuid}", path)
    return _NUMERIC_SEGMENT.sub("/{id}", path)

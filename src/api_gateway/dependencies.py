"""FastAPI dependencies exposing objects built at application startup."""
from fastapi import Request

from .downstream import DownstreamClient
from .proxy import RouteForwarder, ServiceRegistry


def get_downstream_client(request: Request) -> DownstreamClient:
    return request.app.state.downstream


def get_forwarder(request: Request) -> RouteForwarder:
    return request.app.state.forwarder


def get_registry(request: Request) -> ServiceRegistry:
    return request.app.state.forwarder.registry

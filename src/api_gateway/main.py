"""API Gateway main application.

Central entry point for all Transcendence API requests.
Handles authentication, request forwarding and error mapping.
"""
import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config.settings import Settings, get_settings
from .downstream import DownstreamClient
from .errors import GatewayError
from .health import router as health_router
from .logging import configure_logging, get_logger
from .metrics import METRICS_CONTENT_TYPE, get_metrics, init_metrics, record_request
from .middleware.auth import AuthMiddleware, PROTECTED_ROUTES
from .middleware.correlation import CorrelationIDMiddleware
from .middleware.error_handler import (
    gateway_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .middleware.security import SecurityHeadersMiddleware
from .proxy import RouteForwarder, ServiceRegistry
from .routes.auth import router as auth_router
from .routes.gateway import router as gateway_router
from .routes.users import router as users_router

logger = get_logger(__name__)

LOCAL_ORIGIN_REGEX = r"https?://(localhost|127\.0\.0\.1)(:\d+)?"


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the gateway application.

    Args:
        settings: Gateway configuration; loaded from the environment if omitted
        transport: httpx transport for downstream calls (tests inject a mock)
    """
    settings = settings or get_settings()
    configure_logging(log_level=settings.log_level, log_format=settings.log_format)

    client = DownstreamClient(settings, transport=transport)
    forwarder = RouteForwarder(client, ServiceRegistry(settings))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("api_gateway_starting", version=settings.app_version)

        init_metrics(settings.app_version)

        logger.info(
            "api_gateway_started",
            version=settings.app_version,
            environment=settings.environment,
            auth_service_url=settings.auth_service_url,
            users_service_url=settings.users_service_url,
        )

        yield

        await client.close()
        logger.info("api_gateway_shutdown")

    app = FastAPI(
        title="Transcendence API Gateway",
        version=settings.app_version,
        description="Entry point in front of the authentication and users services",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.settings = settings
    app.state.downstream = client
    app.state.forwarder = forwarder

    # Middleware added last runs first
    app.add_middleware(AuthMiddleware, client=client, protected_routes=PROTECTED_ROUTES)
    app.add_middleware(SecurityHeadersMiddleware)

    @app.middleware("http")
    async def timing_middleware(request: Request, call_next):
        """Record request timing metrics."""
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time

        record_request(
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration=duration,
        )

        response.headers["X-Response-Time"] = f"{duration:.3f}s"

        return response

    app.add_middleware(CorrelationIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=LOCAL_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    # Exception handlers
    app.add_exception_handler(GatewayError, gateway_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(gateway_router)

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus metrics endpoint."""
        return Response(content=get_metrics(), media_type=METRICS_CONTENT_TYPE)

    @app.get("/")
    async def root():
        """API Gateway root endpoint."""
        return {
            "service": "Transcendence API Gateway",
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health",
        }

    return app


def run() -> None:
    """Serve the gateway with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "api_gateway.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()

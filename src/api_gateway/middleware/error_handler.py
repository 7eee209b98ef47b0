"""Exception handlers rendering errors as ``{"error": ...}`` bodies."""
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from ..errors import GatewayError

logger = structlog.get_logger(__name__)


async def gateway_exception_handler(request: Request, exc: GatewayError) -> Response:
    logger.info(
        "gateway_error",
        path=request.url.path,
        status=exc.status_code,
        error_type=type(exc).__name__,
    )
    return exc.to_response()


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> Response:
    logger.info("request_validation_failed", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(
        status_code=422,
        content={"error": "Validation failed", "details": jsonable_encoder(exc.errors())},
    )


async def general_exception_handler(request: Request, exc: Exception) -> Response:
    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )

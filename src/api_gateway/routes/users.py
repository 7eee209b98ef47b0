"""Users service routes.

Protected by ``AuthMiddleware``; the validated identity travels to the
users service in the ``x-user-data`` header.
"""
from fastapi import APIRouter, Depends, Request, Response

from ..dependencies import get_forwarder
from ..errors import MissingUploadError, PayloadTooLargeError
from ..middleware.auth import require_user
from ..proxy import RouteForwarder

router = APIRouter(prefix="/users", tags=["Users"], dependencies=[Depends(require_user)])

MAX_AVATAR_BYTES = 10 * 1024 * 1024


async def read_limited_body(request: Request, limit: int) -> bytes:
    """Read the request body, refusing anything larger than ``limit`` bytes.

    Raises:
        PayloadTooLargeError: Declared or actual size exceeds ``limit``
    """
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise PayloadTooLargeError()

    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            raise PayloadTooLargeError()
        chunks.append(chunk)
    return b"".join(chunks)


@router.get("/")
async def get_users(request: Request, forwarder: RouteForwarder = Depends(get_forwarder)) -> Response:
    return await forwarder.forward(request, "users", "/")


@router.get("/user")
async def get_user(request: Request, forwarder: RouteForwarder = Depends(get_forwarder)) -> Response:
    """Look up a single user; query parameters are passed through."""
    return await forwarder.forward(request, "users", "/user")


@router.put("/update-user")
async def update_user(request: Request, forwarder: RouteForwarder = Depends(get_forwarder)) -> Response:
    return await forwarder.forward(request, "users", "/update-user")


@router.post("/upload-avatar")
async def upload_avatar(request: Request, forwarder: RouteForwarder = Depends(get_forwarder)) -> Response:
    """Forward a multipart avatar upload (10 MB max) unchanged, boundary included."""
    body = await read_limited_body(request, MAX_AVATAR_BYTES)
    if not body:
        raise MissingUploadError()
    return await forwarder.forward(request, "users", "/upload-avatar", body=body)

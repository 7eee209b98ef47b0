"""Public authentication routes, forwarded to the auth service.

No token is required: a caller has none before logging in.
"""
from fastapi import APIRouter, Depends, Request, Response

from ..dependencies import get_forwarder
from ..proxy import RouteForwarder

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/login")
async def login(request: Request, forwarder: RouteForwarder = Depends(get_forwarder)) -> Response:
    """Forward credentials to the auth service and relay its answer."""
    return await forwarder.forward(request, "auth", "/login")


@router.post("/register")
async def register(request: Request, forwarder: RouteForwarder = Depends(get_forwarder)) -> Response:
    """Forward a registration to the auth service and relay its answer."""
    return await forwarder.forward(request, "auth", "/register")

"""Middleware for API Gateway."""
from .auth import AuthMiddleware, get_current_user, require_user
from .correlation import CorrelationIDMiddleware
from .security import SecurityHeadersMiddleware

__all__ = [
    "AuthMiddleware",
    "get_current_user",
    "require_user",
    "CorrelationIDMiddleware",
    "SecurityHeadersMiddleware",
]

"""API Gateway for the Transcendence platform.

Single entry point in front of the authentication and users services.
Validates bearer tokens against the auth service and forwards requests
to the owning service.
"""

__version__ = "1.0.0"

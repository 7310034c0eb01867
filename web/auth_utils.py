"""Shared bearer token authentication for operator endpoints."""

import logging
import secrets
from datetime import datetime, timezone
from typing import Any

from fastapi import HTTPException, Request
from starlette.status import HTTP_401_UNAUTHORIZED

logger = logging.getLogger(__name__)

# Security logger for auth events
security_logger = logging.getLogger("security")


class AuthenticationError(HTTPException):
    """Custom exception for authentication failures."""

    def __init__(self, detail: str = "Authentication failed"):
        super().__init__(
            status_code=HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_bearer_token(request: Request) -> str:
    """
    Extract the bearer token from the Authorization header.

    Raises:
        AuthenticationError: If the header is missing or not a bearer token
    """
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Missing bearer token")
    return token.strip()


def verify_server_token(token: str, expected: str | None) -> bool:
    """Constant-time comparison against the configured server token."""
    if not expected:
        return False
    return secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))


async def require_server_token(request: Request) -> None:
    """
    FastAPI dependency guarding operator and relay endpoints.

    Usage in route:
        @router.post("/debate/start", dependencies=[Depends(require_server_token)])
    """
    expected = request.app.state.config.system.resolve_server_token()
    if not expected:
        security_logger.error("SERVER_TOKEN is not configured, rejecting request")
        raise AuthenticationError("Server token is not configured")

    try:
        token = get_bearer_token(request)
        if not verify_server_token(token, expected):
            raise AuthenticationError("Invalid server token")
    except AuthenticationError:
        log_security_event(
            "server_token_rejected", {"path": request.url.path}, request
        )
        raise


def log_security_event(
    event_type: str, details: dict[str, Any], request: Request | None = None
):
    """
    Log security-related events for monitoring and auditing.

    Args:
        event_type: Type of security event (e.g., "server_token_rejected")
        details: Dictionary of event details (avoid sensitive data)
        request: Optional FastAPI request for IP logging
    """
    log_data = {
        "event_type": event_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **details,
    }

    if request and request.client:
        log_data["client_ip"] = request.client.host

    security_logger.warning(f"Security event: {log_data}")

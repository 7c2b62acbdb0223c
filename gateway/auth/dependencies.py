"""FastAPI dependencies for credential extraction and admin access."""

import hmac

from fastapi import Header, Request

from gateway.config import settings
from gateway.exceptions import ForbiddenError


def extract_api_key(
    authorization: str | None = None, x_api_key: str | None = None
) -> str:
    """
    Extract the presented API key from request headers.

    `Authorization: Bearer <key>` wins over `X-API-Key`. A missing or
    malformed header yields an empty string, which validation rejects.

    Args:
        authorization: Authorization header value
        x_api_key: X-API-Key header value

    Returns:
        Presented key, or "" if none was sent
    """
    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]
    if x_api_key:
        return x_api_key.strip()
    return ""


async def get_presented_api_key(
    authorization: str | None = Header(None),
    x_api_key: str | None = Header(None),
) -> str:
    """Dependency form of `extract_api_key`."""
    return extract_api_key(authorization, x_api_key)


async def require_admin_token(
    x_admin_token: str | None = Header(None),
) -> None:
    """
    Guard admin routes with the configured admin token.

    Raises:
        ForbiddenError: If no admin token is configured or it does not match
    """
    if not settings.admin_token:
        raise ForbiddenError(message="Admin API is disabled")
    if not x_admin_token or not hmac.compare_digest(
        x_admin_token.encode("utf-8"), settings.admin_token.encode("utf-8")
    ):
        raise ForbiddenError(message="Invalid admin token")


def get_services(request: Request):
    """Return the GatewayServices container attached to the app."""
    return request.app.state.services

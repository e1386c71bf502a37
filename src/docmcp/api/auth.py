"""API key authentication dependency."""

from fastapi import Depends, Header

from docmcp.api.service import Services, get_services
from docmcp.models.api_key import ApiKey


def extract_api_key(authorization: str | None, x_api_key: str | None) -> str | None:
    """Credential from ``Authorization: Bearer <key>``, else ``X-API-Key``."""
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    if x_api_key and x_api_key.strip():
        return x_api_key.strip()
    return None


async def require_api_key(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None),
    services: Services = Depends(get_services),
) -> ApiKey | None:
    """
    Authenticate the caller.

    AuthenticationError and RateLimitExceededError propagate to the
    app-level handlers, which turn them into 401 and 429.
    """
    if not services.settings.api_key_auth_enabled:
        return None
    return await services.gate.authenticate(extract_api_key(authorization, x_api_key))

"""
Shared-key authentication for the control endpoints.

Clients send one of the comma-separated ``API_KEYS`` in the
``X-API-KEY`` header; keys are compared in constant time. With no keys
configured the API is open, which is how local development runs.
"""

import secrets

import structlog
from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from problem_vault.config.settings import get_settings

logger = structlog.get_logger(__name__)

api_key_header = APIKeyHeader(name="X-API-KEY", auto_error=False)

OPEN_ACCESS = "dev-mode"


def _matches_any(candidate: str, keys: list[str]) -> bool:
    return any(secrets.compare_digest(candidate.encode(), key.encode()) for key in keys)


async def verify_api_key(api_key: str | None = Security(api_key_header)) -> str:
    """Return the caller's key, or ``OPEN_ACCESS`` when auth is disabled."""
    keys = get_settings().api_key_list
    if not keys:
        return OPEN_ACCESS

    if not api_key:
        detail = "X-API-KEY header required"
    elif not _matches_any(api_key, keys):
        detail = "API key not recognised"
    else:
        return api_key

    logger.warning("Rejected API request", reason=detail)
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "ApiKey"},
    )

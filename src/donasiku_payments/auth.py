"""Operator authentication and rate limiting for the API."""

import logging
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import AppConfig, get_env
from .dependencies import get_config

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)

CHECK_RATE_LIMIT = get_env("CHECK_RATE_LIMIT", "30/minute")


def client_address(request: Request) -> str:
    """Rate-limit key: first X-Forwarded-For hop when behind a proxy."""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(key_func=client_address)


async def verify_api_key(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer),
    config: AppConfig = Depends(get_config),
) -> str:
    """Verify the operator API key from the Authorization header.

    Guards the cron sweep and the payment-method sync.

    Raises:
        HTTPException: 401 if the key is missing or wrong, 500 if no key is
            configured on the server.
    """
    if not config.api_key:
        logger.error("API_KEY environment variable is not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")
    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not secrets.compare_digest(credentials.credentials.encode(), config.api_key.encode()):
        logger.warning("Rejected operator request with invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")
    return credentials.credentials

"""Caller authentication for ad-hoc scan requests.

The service holds no user database. A bearer token is accepted when the
configured auth host answers ``GET {auth_host}/user`` with a 2xx; a 401 means
the token is rejected, anything else is an upstream failure.
"""

from __future__ import annotations

import httpx
from fastapi import HTTPException, status

from scangate.core.logging import get_logger

logger = get_logger(__name__)


async def verify_token(auth_host: str, authorization: str, *, timeout: float = 10.0) -> bool:
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.get(
            f"{auth_host.rstrip('/')}/user",
            headers={"Authorization": authorization, "Accept": "application/json"},
        )
    if resp.status_code == status.HTTP_401_UNAUTHORIZED:
        return False
    resp.raise_for_status()
    user = resp.json()
    logger.info("Caller authenticated", user=user.get("cn") if isinstance(user, dict) else None)
    return True


async def authenticate(auth_host: str, authorization: str | None) -> None:
    """Raise 401 for a missing/rejected token, 502 if the auth host fails."""
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        accepted = await verify_token(auth_host, authorization)
    except httpx.HTTPError as exc:
        logger.error("Auth host unavailable", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Authentication service unavailable"
        )
    if not accepted:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

"""FastAPI dependency providers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, Request

from scangate.core.auth import authenticate
from scangate.core.context import AppContext
from scangate.services.store import ScanStore


def get_context(request: Request) -> AppContext:
    """The AppContext built by the lifespan (or injected by create_app)."""
    return request.app.state.ctx


def get_store(ctx: Annotated[AppContext, Depends(get_context)]) -> ScanStore:
    return ctx.store


async def require_caller(
    ctx: Annotated[AppContext, Depends(get_context)],
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Validate the caller against the auth host; open when none is configured."""
    if ctx.settings.auth_host:
        await authenticate(ctx.settings.auth_host, authorization)

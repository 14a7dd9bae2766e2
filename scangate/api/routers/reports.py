"""Link targets used in release statuses: archived reports and error details."""

from __future__ import annotations

import json
import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status

from scangate.api.dependencies import get_context
from scangate.core.context import AppContext
from scangate.core.errors import ArchiveError, PersistenceError
from scangate.core.logging import get_logger
from scangate.schemas.profile import ErrorOut

router = APIRouter(tags=["reports"])
logger = get_logger(__name__)

CtxDep = Annotated[AppContext, Depends(get_context)]


@router.get("/reports/{profile_id}")
async def get_report(profile_id: uuid.UUID, ctx: CtxDep) -> Any:
    """Serve the archived full report of a profile."""
    try:
        profile = await ctx.store.get_profile(profile_id)
    except PersistenceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable")
    if not profile:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scan profile not found")
    if not profile.report_key:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"No archived report yet (status: {profile.status})",
        )
    try:
        body = await ctx.storage.get(profile.report_key)
    except ArchiveError as exc:
        logger.error("Unable to read archived report", profile_id=str(profile_id), error=str(exc))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Report storage unavailable")
    return json.loads(body)


@router.get("/errors/{error_id}", response_model=ErrorOut)
async def get_error(error_id: uuid.UUID, ctx: CtxDep) -> ErrorOut:
    """Details behind the link of an ``error`` release status."""
    try:
        error = await ctx.store.get_error(error_id)
    except PersistenceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable")
    if not error:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Requested error details not found")

    out = ErrorOut(
        id=error.id,
        description=error.description,
        created_at=error.created_at,
        profile_id=error.profile_id,
        scan_status=error.profile.status if error.profile else None,
    )
    if error.release:
        ui = ctx.settings.platform_ui_url.rstrip("/")
        out.app_name = error.release.app_name
        out.release = error.release.release
        out.app_url = f"{ui}/apps/{error.release.app_name}"
        out.releases_url = f"{ui}/apps/{error.release.app_name}/releases"
    return out

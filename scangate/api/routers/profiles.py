"""Scan profiles router: ad-hoc scans and profile lookups."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from scangate.api.dependencies import get_context, get_store, require_caller
from scangate.core.context import AppContext
from scangate.core.errors import DomainNotRegistered, PersistenceError, ProviderError
from scangate.models.scan_profile import ScanProfile
from scangate.schemas.profile import ProfileList, ProfileOut, ScanRequest
from scangate.services.intake import launch_scan
from scangate.services.store import ScanStore

router = APIRouter(tags=["profiles"])

CtxDep = Annotated[AppContext, Depends(get_context)]
StoreDep = Annotated[ScanStore, Depends(get_store)]


@router.post(
    "/scans",
    response_model=ProfileOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_caller)],
)
async def create_scan(payload: ScanRequest, ctx: CtxDep) -> ScanProfile:
    """Provision and start a scan outside of any release."""
    try:
        return await launch_scan(
            ctx,
            payload.url,
            payload.app_name,
            success_threshold=payload.success_threshold,
        )
    except (DomainNotRegistered, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except ProviderError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.describe())
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable"
        )


@router.get("/profiles", response_model=ProfileList)
async def list_profiles(
    store: StoreDep,
    include_deleted: bool = Query(False, alias="all"),
) -> ProfileList:
    try:
        profiles = await store.list_profiles(active_only=not include_deleted)
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable"
        )
    return ProfileList(total=len(profiles), items=profiles)


@router.get("/profiles/{profile_id}", response_model=ProfileOut)
async def get_profile(profile_id: uuid.UUID, store: StoreDep) -> ScanProfile:
    try:
        profile = await store.get_profile(profile_id)
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable"
        )
    if not profile:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scan profile not found")
    return profile

"""Platform webhook router: start a scan for every released build."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Header, HTTPException, status
from pydantic import ValidationError

from scangate.api.dependencies import get_context
from scangate.core.context import AppContext
from scangate.core.logging import get_logger
from scangate.schemas.hook import ReleaseEvent
from scangate.services.intake import handle_release_event

router = APIRouter(prefix="/hook", tags=["hooks"])
logger = get_logger(__name__)

CtxDep = Annotated[AppContext, Depends(get_context)]


@router.post("/released", status_code=status.HTTP_200_OK)
async def release_hook(
    ctx: CtxDep,
    background_tasks: BackgroundTasks,
    payload: Annotated[dict[str, Any], Body()],
    x_akkeris_token: Annotated[str | None, Header()] = None,
) -> dict[str, str]:
    """Acknowledge the hook at once; the scan is set up in the background."""
    try:
        event = ReleaseEvent.model_validate(payload)
    except ValidationError:
        event = None
    if event is None or not x_akkeris_token:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Payload did not match expected format",
        )

    background_tasks.add_task(
        handle_release_event,
        ctx,
        app_name=event.key,
        release_ref=event.release.id,
        platform_token=x_akkeris_token,
        payload=payload,
    )
    logger.info("Release hook accepted", app=event.key, release=event.release.id)
    return {"status": "accepted"}

"""Schema for platform "released" hook payloads."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ReleaseRef(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1)


class ReleaseEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    action: Literal["released"]
    key: str = Field(..., min_length=1, description="App name")
    release: ReleaseRef

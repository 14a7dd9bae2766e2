"""Schemas for scan profiles, ad-hoc scan requests and error details."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ScanRequest(BaseModel):
    url: str = Field(..., description="URL of the deployed app to scan")
    app_name: str | None = Field(default=None, description="Platform app the URL belongs to")
    success_threshold: float | None = Field(
        default=None,
        ge=0,
        le=10,
        description="CVSS cutoff for this scan; reports scoring below it pass",
    )


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    endpoint: str
    target_app: str | None
    target_url: str
    status: str
    report_key: str | None
    success_threshold: float | None
    release_id: uuid.UUID | None
    deleted: bool
    created_at: datetime
    updated_at: datetime


class ProfileList(BaseModel):
    total: int
    items: list[ProfileOut]


class ErrorOut(BaseModel):
    id: uuid.UUID
    description: str
    created_at: datetime
    profile_id: uuid.UUID | None = None
    scan_status: str | None = None
    app_name: str | None = None
    release: str | None = None
    app_url: str | None = None
    releases_url: str | None = None

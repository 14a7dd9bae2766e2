"""ScanProfile model: one provider-side scan attempt and its lifecycle state."""

from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import Boolean, Float, ForeignKey, String, Uuid, false
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scangate.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ScanStatus(str, Enum):
    PROFILE_CREATED = "profile_created"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    SUCCESS = "success"
    FAIL = "fail"
    ERROR = "error"
    TIMEOUT = "timeout"


# Provider states that mean the scan is still moving along
IN_PROGRESS_STATUSES = frozenset(
    {ScanStatus.STARTING, ScanStatus.RUNNING, ScanStatus.STOPPING}
)
VERDICT_STATUSES = frozenset({ScanStatus.SUCCESS, ScanStatus.FAIL})
TERMINAL_STATUSES = VERDICT_STATUSES | {ScanStatus.ERROR, ScanStatus.TIMEOUT}

# Everything the reconciler still has to look at; terminal rows stay in the
# set until their deletion goes through
WORKING_STATUSES = (
    frozenset({ScanStatus.PROFILE_CREATED, ScanStatus.STOPPED})
    | IN_PROGRESS_STATUSES
    | TERMINAL_STATUSES
)

# Provider states reporting that the scan could not run
PROVIDER_ERROR_STATES = frozenset({"unable_to_resolve", "unable_to_complete"})


class ScanProfile(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "scan_profiles"

    provider_token: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Host registered with the provider (e.g. app.example.com)
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    target_app: Mapped[str | None] = mapped_column(String(255), nullable=True)
    target_url: Mapped[str] = mapped_column(String(500), nullable=False)

    release_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("releases.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ScanStatus.PROFILE_CREATED.value,
        index=True,
    )
    # Object storage key of the archived full report
    report_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    success_threshold: Mapped[float | None] = mapped_column(Float, nullable=True)
    deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false(), index=True
    )

    release: Mapped["Release | None"] = relationship(  # noqa: F821
        "Release", back_populates="profiles"
    )

    @property
    def scan_status(self) -> ScanStatus:
        return ScanStatus(self.status)

    def __repr__(self) -> str:
        return f"<ScanProfile name={self.name!r} status={self.status!r}>"

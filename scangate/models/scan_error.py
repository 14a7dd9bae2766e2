"""ScanError model: write-once record of a terminal failure."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scangate.models.base import Base, UUIDPrimaryKeyMixin


class ScanError(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "scan_errors"

    description: Mapped[str] = mapped_column(Text, nullable=False)

    release_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("releases.id", ondelete="SET NULL"),
        nullable=True,
    )
    profile_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("scan_profiles.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    release: Mapped["Release | None"] = relationship("Release")  # noqa: F821
    profile: Mapped["ScanProfile | None"] = relationship("ScanProfile")  # noqa: F821

    def __repr__(self) -> str:
        return f"<ScanError id={self.id} profile={self.profile_id}>"

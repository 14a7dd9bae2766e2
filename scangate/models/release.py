"""Release model: the deployment event a scan profile reports back to."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Boolean, String, Text, false
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scangate.core.crypto import decrypt
from scangate.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Release(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "releases"

    # Platform-side identifiers
    release: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    app_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Handle of the release status we keep patching; None if it was never created
    status_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Bearer token from the release hook, Fernet-encrypted
    token_ciphertext: Mapped[str] = mapped_column(Text, nullable=False)

    payload: Mapped[dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )
    deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    profiles: Mapped[list["ScanProfile"]] = relationship(  # noqa: F821
        "ScanProfile", back_populates="release"
    )

    def platform_token(self, secret_key: str | None = None) -> str:
        return decrypt(self.token_ciphertext, secret_key)

    def __repr__(self) -> str:
        return f"<Release app={self.app_name!r} release={self.release!r}>"

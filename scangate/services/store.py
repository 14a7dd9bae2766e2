"""Persistence store for releases, scan profiles and scan errors.

Each method runs in its own short transaction, and every write is a single
statement keyed by primary key, so concurrent sweeps touching different
profiles never contend and a repeated write to the same profile is harmless.
All SQLAlchemy failures surface as :class:`PersistenceError`.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from scangate.core.crypto import encrypt
from scangate.core.errors import PersistenceError
from scangate.models.release import Release
from scangate.models.scan_error import ScanError
from scangate.models.scan_profile import WORKING_STATUSES, ScanProfile, ScanStatus


class ScanStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        secret_key: str | None = None,
    ) -> None:
        self._factory = session_factory
        self._secret_key = secret_key

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc

    # ── Reads ────────────────────────────────────────────────────────────────

    async def list_non_terminal_profiles(self) -> list[ScanProfile]:
        """Every live profile the reconciler still owes a decision or cleanup."""
        query = (
            select(ScanProfile)
            .outerjoin(Release, ScanProfile.release_id == Release.id)
            .where(
                ScanProfile.deleted.is_(False),
                ScanProfile.status.in_([s.value for s in WORKING_STATUSES]),
                or_(Release.id.is_(None), Release.deleted.is_(False)),
            )
            .options(selectinload(ScanProfile.release))
            .order_by(ScanProfile.created_at.desc())
        )
        async with self._transaction() as session:
            return list((await session.execute(query)).scalars().all())

    async def list_profiles(self, *, active_only: bool = True) -> list[ScanProfile]:
        query = select(ScanProfile).options(selectinload(ScanProfile.release))
        if active_only:
            query = query.where(ScanProfile.deleted.is_(False))
        query = query.order_by(ScanProfile.created_at.desc())
        async with self._transaction() as session:
            return list((await session.execute(query)).scalars().all())

    async def get_profile(self, profile_id: uuid.UUID) -> ScanProfile | None:
        """Fetch a profile by id, soft-deleted ones included."""
        async with self._transaction() as session:
            result = await session.execute(
                select(ScanProfile)
                .where(ScanProfile.id == profile_id)
                .options(selectinload(ScanProfile.release))
            )
            return result.scalar_one_or_none()

    async def get_error(self, error_id: uuid.UUID) -> ScanError | None:
        async with self._transaction() as session:
            result = await session.execute(
                select(ScanError)
                .where(ScanError.id == error_id)
                .options(selectinload(ScanError.release), selectinload(ScanError.profile))
            )
            return result.scalar_one_or_none()

    # ── Inserts ──────────────────────────────────────────────────────────────

    async def create_release(
        self,
        *,
        release: str,
        app_name: str,
        status_id: str | None,
        platform_token: str,
        payload: dict[str, Any] | None = None,
    ) -> Release:
        row = Release(
            id=uuid.uuid4(),
            release=release,
            app_name=app_name,
            status_id=status_id,
            token_ciphertext=encrypt(platform_token, self._secret_key),
            payload=payload,
            deleted=False,
        )
        async with self._transaction() as session:
            session.add(row)
        return row

    async def add_profile(self, profile: ScanProfile) -> ScanProfile:
        """Persist a freshly provisioned profile and return it re-loaded."""
        if profile.id is None:
            profile.id = uuid.uuid4()
        async with self._transaction() as session:
            session.add(profile)
        return await self.get_profile(profile.id)

    async def insert_error(
        self,
        description: str,
        *,
        release_id: uuid.UUID | None = None,
        profile_id: uuid.UUID | None = None,
        error_id: uuid.UUID | None = None,
    ) -> uuid.UUID:
        row = ScanError(
            id=error_id or uuid.uuid4(),
            description=description,
            release_id=release_id,
            profile_id=profile_id,
        )
        async with self._transaction() as session:
            session.add(row)
        return row.id

    # ── Updates ──────────────────────────────────────────────────────────────

    async def update_status(self, profile_id: uuid.UUID, status: ScanStatus | str) -> None:
        await self._update_profile(profile_id, status=ScanStatus(status).value)

    async def update_report_key(self, profile_id: uuid.UUID, report_key: str) -> None:
        await self._update_profile(profile_id, report_key=report_key)

    async def record_verdict(
        self, profile_id: uuid.UUID, status: ScanStatus, report_key: str
    ) -> None:
        """Store the verdict and the archive key together."""
        await self._update_profile(
            profile_id, status=ScanStatus(status).value, report_key=report_key
        )

    async def soft_delete_profile(
        self, profile_id: uuid.UUID, *, release_id: uuid.UUID | None = None
    ) -> None:
        """Mark a profile (and its release, if given) deleted in one transaction."""
        async with self._transaction() as session:
            await session.execute(
                update(ScanProfile).where(ScanProfile.id == profile_id).values(deleted=True)
            )
            if release_id is not None:
                await session.execute(
                    update(Release).where(Release.id == release_id).values(deleted=True)
                )

    async def soft_delete_release(self, release_id: uuid.UUID) -> None:
        async with self._transaction() as session:
            await session.execute(
                update(Release).where(Release.id == release_id).values(deleted=True)
            )

    async def _update_profile(self, profile_id: uuid.UUID, **values: Any) -> None:
        async with self._transaction() as session:
            await session.execute(
                update(ScanProfile).where(ScanProfile.id == profile_id).values(**values)
            )

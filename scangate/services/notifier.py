"""Release status echo and error records.

Everything sent to the platform here is best effort: failures are logged as
:class:`PlatformReportError` and never propagate into the lifecycle.
"""

from __future__ import annotations

import uuid

from scangate.core.errors import PersistenceError, PlatformReportError
from scangate.core.logging import get_logger
from scangate.gateways.platform import PlatformGateway
from scangate.models.release import Release
from scangate.services.store import ScanStore

logger = get_logger(__name__)


class StatusNotifier:
    def __init__(
        self,
        store: ScanStore,
        platform: PlatformGateway,
        *,
        callback_url: str,
        secret_key: str | None = None,
    ) -> None:
        self._store = store
        self._platform = platform
        self._callback_url = callback_url.rstrip("/")
        self._secret_key = secret_key

    def report_link(self, profile_id: uuid.UUID) -> str:
        return f"{self._callback_url}/reports/{profile_id}"

    async def pending(self, release: Release | None, description: str) -> bool:
        return await self._update(release, "pending", description)

    async def verdict(self, release: Release | None, verdict: str, profile_id: uuid.UUID) -> bool:
        description = "Security scan passed!" if verdict == "success" else "Security scan failed"
        return await self._update(release, verdict, description, self.report_link(profile_id))

    async def record_error(
        self,
        description: str,
        error_type: str,
        *,
        release: Release | None = None,
        profile_id: uuid.UUID | None = None,
    ) -> uuid.UUID:
        """Write the ScanError row, then point the release status at it."""
        error_id = uuid.uuid4()
        try:
            await self._store.insert_error(
                description,
                release_id=release.id if release else None,
                profile_id=profile_id,
                error_id=error_id,
            )
        except PersistenceError as exc:
            logger.error("Unable to store scan error", error_id=str(error_id), error=str(exc))

        if release is None or not release.status_id:
            return error_id
        try:
            await self._platform.update_release_status_with_error(
                release.platform_token(self._secret_key),
                release.app_name,
                release.release,
                release.status_id,
                str(error_id),
                error_type,
            )
        except PlatformReportError as exc:
            logger.error(
                "Unable to report error to platform",
                error_type=error_type,
                release=release.release,
                error=str(exc),
            )
        return error_id

    async def _update(
        self,
        release: Release | None,
        state: str,
        description: str,
        target_url: str | None = None,
    ) -> bool:
        if release is None or not release.status_id:
            return False
        try:
            await self._platform.update_release_status(
                release.platform_token(self._secret_key),
                release.app_name,
                release.release,
                release.status_id,
                state,
                description,
                target_url,
            )
        except PlatformReportError as exc:
            logger.error(
                "Unable to update release status",
                state=state,
                release=release.release,
                error=str(exc),
            )
            return False
        return True

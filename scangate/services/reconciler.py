"""Scan lifecycle reconciler.

One sweep walks every live scan profile and moves it one step along::

    profile_created → starting / running / stopping → stopped → success | fail
    (any state)     → error | timeout

Terminal profiles are removed from the provider and then soft-deleted. The
provider delete always comes first: a row is never retired while the provider
still holds the live profile, so a failed delete just leaves the row for the
next sweep.

Profiles are independent. A sweep processes them concurrently (bounded by a
semaphore) and a failure on one never affects another.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from scangate.core.errors import ArchiveError, PersistenceError, ProviderError
from scangate.core.logging import get_logger
from scangate.gateways.provider import ProviderGateway
from scangate.gateways.storage import ReportStorage
from scangate.models.scan_profile import (
    IN_PROGRESS_STATUSES,
    PROVIDER_ERROR_STATES,
    VERDICT_STATUSES,
    ScanProfile,
    ScanStatus,
)
from scangate.services.notifier import StatusNotifier
from scangate.services.store import ScanStore

logger = get_logger(__name__)

DEFAULT_SUCCESS_THRESHOLD = 6.0

# Sweep outcomes besides the terminal statuses themselves
CLEANED_UP = "cleaned_up"
DEFERRED = "deferred"
UPDATED = "updated"
UNCHANGED = "unchanged"
CRASHED = "crashed"


def classify_severity(score: float, threshold: float = DEFAULT_SUCCESS_THRESHOLD) -> ScanStatus:
    """Scores below the threshold pass; the threshold itself fails."""
    return ScanStatus.SUCCESS if score < threshold else ScanStatus.FAIL


def report_key_for(provider_token: str, when: datetime) -> str:
    return f"{provider_token}_{int(when.timestamp() * 1000)}.json"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Reconciler:
    def __init__(
        self,
        store: ScanStore,
        provider: ProviderGateway,
        storage: ReportStorage,
        notifier: StatusNotifier,
        *,
        timeout_minutes: int = 50,
        default_threshold: float = DEFAULT_SUCCESS_THRESHOLD,
        max_concurrency: int = 10,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._provider = provider
        self._storage = storage
        self._notifier = notifier
        self._timeout = timedelta(minutes=timeout_minutes)
        self._timeout_minutes = timeout_minutes
        self._default_threshold = default_threshold
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._clock = clock

    @property
    def timeout_message(self) -> str:
        return f"The security scan took longer than {self._timeout_minutes} minutes to complete."

    # ── Sweep ────────────────────────────────────────────────────────────────

    async def sweep(self) -> dict[str, int]:
        """Advance every live profile once; returns outcome counts."""
        try:
            profiles = await self._store.list_non_terminal_profiles()
        except PersistenceError as exc:
            logger.error("Unable to load pending scan profiles", error=str(exc))
            return {}

        if not profiles:
            return {}

        started = time.monotonic()
        results = await asyncio.gather(
            *(self._process_bounded(p) for p in profiles), return_exceptions=True
        )

        outcomes: Counter[str] = Counter()
        for profile, result in zip(profiles, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.error(
                    "Unhandled error processing scan profile",
                    profile_id=str(profile.id),
                    error=repr(result),
                )
                outcomes[CRASHED] += 1
            else:
                outcomes[result] += 1

        logger.info(
            "Sweep complete",
            profiles=len(profiles),
            outcomes=dict(outcomes),
            duration_s=round(time.monotonic() - started, 2),
        )
        return dict(outcomes)

    async def _process_bounded(self, profile: ScanProfile) -> str:
        async with self._semaphore:
            return await self.process(profile)

    # ── Per-profile state machine ────────────────────────────────────────────

    async def process(self, profile: ScanProfile) -> str:
        status = ScanStatus(profile.status)

        # Interrupted before cleanup last time
        if status in (ScanStatus.ERROR, ScanStatus.TIMEOUT):
            await self.retire(profile)
            return CLEANED_UP
        if status in VERDICT_STATUSES:
            if profile.report_key:
                await self.retire(profile)
                return CLEANED_UP
            # Verdict was recorded but the archive upload failed
            return await self._complete(profile)

        if self._clock() - _aware(profile.created_at) > self._timeout:
            logger.info("Scan profile timed out", profile_id=str(profile.id), name=profile.name)
            return await self.terminate(profile, ScanStatus.TIMEOUT, self.timeout_message, "Timeout")

        try:
            state = await self._provider.get_scan_status(profile.provider_token)
        except ProviderError as exc:
            logger.error(
                "Unable to get scan status from provider",
                profile_id=str(profile.id),
                error=str(exc),
            )
            return await self.terminate(
                profile,
                ScanStatus.ERROR,
                "Unable to get scan profile status from the scan provider API",
                exc.error_type,
            )

        if state in PROVIDER_ERROR_STATES:
            logger.info("Scan finished with error", profile_id=str(profile.id), state=state)
            return await self.terminate(
                profile, ScanStatus.ERROR, f"Scan returned with an error: {state}", "Scan Error"
            )

        if state == ScanStatus.STOPPED.value:
            logger.info("Scan completed", profile_id=str(profile.id), name=profile.name)
            return await self._complete(profile)

        if state == profile.status:
            return UNCHANGED

        try:
            new_status = ScanStatus(state)
        except ValueError:
            new_status = None
        if new_status not in IN_PROGRESS_STATUSES:
            logger.warning(
                "Ignoring unrecognised provider state", profile_id=str(profile.id), state=state
            )
            return UNCHANGED

        logger.info(
            "Scan profile changed status",
            profile_id=str(profile.id),
            old=profile.status,
            new=state,
        )
        try:
            await self._store.update_status(profile.id, new_status)
        except PersistenceError as exc:
            logger.error("Unable to update scan profile status", profile_id=str(profile.id), error=str(exc))
        await self._notifier.pending(profile.release, f"Security scan {state}")
        return UPDATED

    async def _complete(self, profile: ScanProfile) -> str:
        try:
            report = await self._provider.get_full_report(profile.provider_token)
        except ProviderError as exc:
            logger.error("Unable to get full scan report", profile_id=str(profile.id), error=str(exc))
            return await self.terminate(
                profile,
                ScanStatus.ERROR,
                "Unable to get full scan report from the scan provider",
                exc.error_type,
            )

        score = _severity_score(report)
        if score is None:
            return await self.terminate(
                profile,
                ScanStatus.ERROR,
                "Full scan report did not include a severity score",
                "Scan Error",
            )

        threshold = (
            profile.success_threshold
            if profile.success_threshold is not None
            else self._default_threshold
        )
        verdict = classify_severity(score, threshold)
        logger.info(
            "Scan verdict",
            profile_id=str(profile.id),
            verdict=verdict.value,
            cvss=score,
            threshold=threshold,
        )
        await self._notifier.verdict(profile.release, verdict.value, profile.id)

        key = report_key_for(profile.provider_token, self._clock())
        try:
            await self._storage.put(
                key,
                json.dumps(report).encode(),
                metadata={"scanProfileToken": profile.provider_token},
            )
        except ArchiveError as exc:
            logger.error("Unable to archive scan report", profile_id=str(profile.id), error=str(exc))
            try:
                await self._store.update_status(profile.id, verdict)
            except PersistenceError as db_exc:
                logger.error("Unable to update scan profile status", profile_id=str(profile.id), error=str(db_exc))
            return DEFERRED

        try:
            await self._store.record_verdict(profile.id, verdict, key)
        except PersistenceError as exc:
            logger.error("Unable to record scan verdict", profile_id=str(profile.id), error=str(exc))
            return DEFERRED

        await self.retire(profile)
        return verdict.value

    # ── Terminal transitions ─────────────────────────────────────────────────

    async def terminate(
        self,
        profile: ScanProfile,
        status: ScanStatus,
        description: str,
        error_type: str,
    ) -> str:
        """Status, error record, platform notice and deletion as one step.

        The terminal status is written first: until it sticks the profile is
        left untouched for the next sweep, so one failure yields one ScanError.
        """
        try:
            await self._store.update_status(profile.id, status)
        except PersistenceError as exc:
            logger.error(
                "Unable to update scan profile status; retrying next sweep",
                profile_id=str(profile.id),
                error=str(exc),
            )
            return DEFERRED
        await self._notifier.record_error(
            description, error_type, release=profile.release, profile_id=profile.id
        )
        await self.retire(profile)
        return status.value

    async def retire(self, profile: ScanProfile) -> bool:
        """Delete the profile at the provider, then soft-delete its rows."""
        try:
            await self._provider.delete_profile(profile.provider_token)
        except ProviderError as exc:
            if not exc.not_found:
                logger.error(
                    "Unable to delete provider scan profile; keeping database row",
                    profile_id=str(profile.id),
                    error=str(exc),
                )
                return False
            logger.info("Provider scan profile already gone", profile_id=str(profile.id))

        try:
            await self._store.soft_delete_profile(profile.id, release_id=profile.release_id)
        except PersistenceError as exc:
            logger.error("Unable to mark scan profile as deleted", profile_id=str(profile.id), error=str(exc))
            return False

        logger.info("Scan profile deleted", profile_id=str(profile.id), name=profile.name)
        return True


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _severity_score(report: dict[str, Any]) -> float | None:
    raw = report.get("cvss") if isinstance(report, dict) else None
    if isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None

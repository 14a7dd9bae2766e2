"""Entry points that create scan profiles: release hooks and ad-hoc requests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from scangate.core.errors import (
    DomainNotRegistered,
    PersistenceError,
    PlatformReportError,
    ProviderError,
    ScanGateError,
)
from scangate.core.logging import get_logger
from scangate.models.release import Release
from scangate.models.scan_profile import IN_PROGRESS_STATUSES, ScanProfile, ScanStatus

if TYPE_CHECKING:
    from scangate.core.context import AppContext

logger = get_logger(__name__)


async def launch_scan(
    ctx: "AppContext",
    target_url: str,
    app_name: str | None = None,
    *,
    release: Release | None = None,
    success_threshold: float | None = None,
) -> ScanProfile:
    """Provision, persist and start a scan; returns the stored profile.

    Failures before the profile row exists are recorded against the release
    (if any) and re-raised. A start failure goes through the reconciler's
    terminal error transition so the provider-side profile is cleaned up.
    """
    try:
        profile = await ctx.provisioner.provision(target_url, app_name)
    except (DomainNotRegistered, ProviderError) as exc:
        description = exc.describe() if isinstance(exc, ProviderError) else str(exc)
        logger.warning("Scan provisioning failed", app=app_name, url=target_url, error=description)
        await ctx.notifier.record_error(description, exc.error_type, release=release)
        await _close_release(ctx, release)
        raise

    profile.release_id = release.id if release else None
    profile.success_threshold = success_threshold
    try:
        profile = await ctx.store.add_profile(profile)
    except PersistenceError:
        logger.error("Unable to store scan profile; removing it from the provider", app=app_name)
        try:
            await ctx.provider.delete_profile(profile.provider_token)
        except ProviderError as exc:
            logger.error("Orphaned provider scan profile", token=profile.provider_token, error=str(exc))
        raise

    try:
        state = await ctx.provisioner.start(profile)
    except ProviderError as exc:
        action = "start scan on" if exc.operation == "start_scan" else "get scan status of"
        description = f"Could not {action} scan profile: {exc.describe()}"
        logger.warning("Scan start failed", profile_id=str(profile.id), error=description)
        await ctx.reconciler.terminate(profile, ScanStatus.ERROR, description, exc.error_type)
        raise

    await ctx.notifier.pending(release, f"Security scan {state}")
    try:
        status = ScanStatus(state)
    except ValueError:
        status = None
    if status in IN_PROGRESS_STATUSES:
        try:
            await ctx.store.update_status(profile.id, status)
            profile.status = status.value
        except PersistenceError as exc:
            # The next sweep picks the state up from the provider anyway
            logger.error("Unable to store initial scan status", profile_id=str(profile.id), error=str(exc))

    logger.info(
        "Scan launched",
        profile_id=str(profile.id),
        app=app_name,
        endpoint=profile.endpoint,
        state=state,
    )
    return profile


async def handle_release_event(
    ctx: "AppContext",
    *,
    app_name: str,
    release_ref: str,
    platform_token: str,
    payload: dict[str, Any],
) -> ScanProfile | None:
    """Background half of the release hook. Never raises."""
    try:
        app = await ctx.platform.get_app(platform_token, app_name)
    except PlatformReportError as exc:
        logger.error("Unable to get app details from platform", app=app_name, error=str(exc))
        return None

    try:
        status_id = await ctx.platform.create_release_status(
            platform_token, app_name, release_ref, "pending", "Security scan pending creation"
        )
    except PlatformReportError as exc:
        logger.error("Unable to create release status", app=app_name, error=str(exc))
        return None

    try:
        release = await ctx.store.create_release(
            release=release_ref,
            app_name=app_name,
            status_id=status_id,
            platform_token=platform_token,
            payload=payload,
        )
    except PersistenceError as exc:
        logger.error("Unable to store release", app=app_name, error=str(exc))
        return None

    target_url = app.get("web_url")
    if not target_url:
        await ctx.notifier.record_error(
            f"{app_name} has no web URL to scan", "Scan Service Error", release=release
        )
        await _close_release(ctx, release)
        return None

    try:
        return await launch_scan(ctx, target_url, app_name, release=release)
    except ValueError as exc:
        await ctx.notifier.record_error(str(exc), "Scan Service Error", release=release)
        await _close_release(ctx, release)
    except ScanGateError as exc:
        logger.info("Release scan not started", app=app_name, release=release_ref, error=str(exc))
    return None


async def _close_release(ctx: "AppContext", release: Release | None) -> None:
    """Retire a release whose scan never got a profile."""
    if release is None:
        return
    try:
        await ctx.store.soft_delete_release(release.id)
    except PersistenceError as exc:
        logger.error("Unable to mark release as deleted", release=release.release, error=str(exc))

"""Tests for services/reconciler.py: one sweep at a time."""

import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from scangate.core.errors import PersistenceError, ProviderError
from scangate.services.reconciler import classify_severity, report_key_for


def test_classify_severity_boundary():
    assert classify_severity(5.9).value == "success"
    assert classify_severity(6.0).value == "fail"
    assert classify_severity(0).value == "success"
    assert classify_severity(8.0, threshold=9.0).value == "success"


def test_report_key_for():
    when = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert report_key_for("P1", when) == "P1_1704067200000.json"


# ── Verdicts ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_stopped_scan_passes(ctx, provider, platform, storage, make_release, make_profile, count_errors):
    release = await make_release()
    profile = await make_profile("P1", "running", release=release)
    provider.states["P1"] = "stopped"
    provider.reports["P1"] = {"cvss": 2.0, "findings": []}

    outcomes = await ctx.reconciler.sweep()

    assert outcomes == {"success": 1}
    stored = await ctx.store.get_profile(profile.id)
    assert stored.status == "success"
    assert stored.deleted is True
    assert stored.release.deleted is True
    assert stored.report_key.startswith("P1_")
    assert json.loads(storage.objects[stored.report_key]) == provider.reports["P1"]
    assert storage.metadata[stored.report_key] == {"scanProfileToken": "P1"}
    assert provider.deleted == ["P1"]
    assert platform.updates[-1]["state"] == "success"
    assert platform.updates[-1]["description"] == "Security scan passed!"
    assert platform.updates[-1]["target_url"] == f"{ctx.settings.callback_url}/reports/{profile.id}"
    assert await count_errors() == 0


@pytest.mark.asyncio
async def test_score_at_threshold_fails(ctx, provider, platform, make_release, make_profile):
    release = await make_release()
    profile = await make_profile("P1", "running", release=release)
    provider.states["P1"] = "stopped"
    provider.reports["P1"] = {"cvss": 6.0}

    assert await ctx.reconciler.sweep() == {"fail": 1}
    assert (await ctx.store.get_profile(profile.id)).status == "fail"
    assert platform.updates[-1]["state"] == "fail"
    assert platform.updates[-1]["description"] == "Security scan failed"


@pytest.mark.asyncio
async def test_profile_threshold_overrides_default(ctx, provider, make_profile):
    await make_profile("P1", "running", success_threshold=9.0)
    provider.states["P1"] = "stopped"
    provider.reports["P1"] = {"cvss": 8.0}

    assert await ctx.reconciler.sweep() == {"success": 1}


@pytest.mark.asyncio
async def test_string_score_is_accepted(ctx, provider, make_profile):
    await make_profile("P1", "running")
    provider.states["P1"] = "stopped"
    provider.reports["P1"] = {"cvss": "5.9"}

    assert await ctx.reconciler.sweep() == {"success": 1}


# ── Errors and timeouts ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_provider_error_state(ctx, provider, platform, make_release, make_profile, count_errors):
    release = await make_release()
    profile = await make_profile("P1", "running", release=release)
    provider.states["P1"] = "unable_to_resolve"

    assert await ctx.reconciler.sweep() == {"error": 1}

    stored = await ctx.store.get_profile(profile.id)
    assert stored.status == "error"
    assert stored.deleted is True
    assert provider.deleted == ["P1"]
    assert await count_errors(profile.id) == 1
    assert platform.updates[-1]["state"] == "error"
    assert platform.updates[-1]["description"] == "Scan failed - Scan Error"
    assert platform.updates[-1]["target_url"].startswith(f"{ctx.settings.callback_url}/errors/")


@pytest.mark.asyncio
async def test_timeout(ctx, provider, platform, make_release, make_profile, count_errors):
    release = await make_release()
    old = datetime.now(timezone.utc) - timedelta(minutes=51)
    profile = await make_profile("P1", "running", release=release, created_at=old)
    provider.states["P1"] = "running"

    assert await ctx.reconciler.sweep() == {"timeout": 1}

    stored = await ctx.store.get_profile(profile.id)
    assert stored.status == "timeout"
    assert stored.deleted is True
    assert provider.count("scan_status") == 0
    assert await count_errors(profile.id) == 1
    assert stored.release.deleted is True

    assert len(platform.updates) == 1
    update = platform.updates[-1]
    assert update["state"] == "error"
    assert update["description"] == "Scan failed - Timeout"
    assert update["target_url"].startswith(f"{ctx.settings.callback_url}/errors/")
    error_id = update["target_url"].rsplit("/", 1)[-1]
    error = await ctx.store.get_error(uuid.UUID(error_id))
    assert error.description == "The security scan took longer than 50 minutes to complete."


@pytest.mark.asyncio
async def test_young_profile_is_polled(ctx, provider, make_profile):
    recent = datetime.now(timezone.utc) - timedelta(minutes=49)
    await make_profile("P1", "running", created_at=recent)
    provider.states["P1"] = "running"

    assert await ctx.reconciler.sweep() == {"unchanged": 1}
    assert provider.count("scan_status") == 1


@pytest.mark.asyncio
async def test_status_fetch_failure(ctx, provider, make_profile, count_errors):
    profile = await make_profile("P1", "running")
    provider.fail["scan_status"] = ProviderError("scan_status", "boom", status_code=500)

    assert await ctx.reconciler.sweep() == {"error": 1}
    assert await count_errors(profile.id) == 1
    assert (await ctx.store.get_profile(profile.id)).deleted is True


@pytest.mark.asyncio
async def test_report_fetch_failure(ctx, provider, make_profile, count_errors):
    profile = await make_profile("P1", "running")
    provider.states["P1"] = "stopped"
    provider.fail["full_report"] = ProviderError("full_report", "gone", status_code=500)

    assert await ctx.reconciler.sweep() == {"error": 1}
    assert await count_errors(profile.id) == 1


@pytest.mark.asyncio
async def test_report_without_score(ctx, provider, make_profile, count_errors):
    profile = await make_profile("P1", "running")
    provider.states["P1"] = "stopped"
    provider.reports["P1"] = {"findings": []}

    assert await ctx.reconciler.sweep() == {"error": 1}
    assert await count_errors(profile.id) == 1


# ── Terminal guard and deletion ──────────────────────────────────────────────

@pytest.mark.asyncio
async def test_terminal_profile_is_only_cleaned_up(ctx, provider, make_profile, count_errors):
    errored = await make_profile("P1", "error")
    decided = await make_profile("P2", "success", report_key="P2_1.json")

    assert await ctx.reconciler.sweep() == {"cleaned_up": 2}

    assert sorted(provider.deleted) == ["P1", "P2"]
    assert provider.count("scan_status") == 0
    assert provider.count("full_report") == 0
    assert await count_errors() == 0
    assert (await ctx.store.get_profile(errored.id)).deleted is True
    assert (await ctx.store.get_profile(decided.id)).deleted is True


@pytest.mark.asyncio
async def test_old_terminal_profile_is_not_timed_out(ctx, provider, make_profile, count_errors):
    old = datetime.now(timezone.utc) - timedelta(hours=3)
    profile = await make_profile("P1", "timeout", created_at=old)

    assert await ctx.reconciler.sweep() == {"cleaned_up": 1}
    assert await count_errors() == 0
    assert (await ctx.store.get_profile(profile.id)).deleted is True


@pytest.mark.asyncio
async def test_failed_provider_delete_keeps_row(ctx, provider, make_release, make_profile):
    release = await make_release()
    profile = await make_profile("P1", "running", release=release)
    provider.states["P1"] = "stopped"
    provider.reports["P1"] = {"cvss": 1.0}
    provider.fail["delete_profile"] = ProviderError("delete_profile", "boom", status_code=500)

    assert await ctx.reconciler.sweep() == {"success": 1}
    stored = await ctx.store.get_profile(profile.id)
    assert stored.status == "success"
    assert stored.report_key
    assert stored.deleted is False
    assert stored.release.deleted is False

    del provider.fail["delete_profile"]
    assert await ctx.reconciler.sweep() == {"cleaned_up": 1}
    stored = await ctx.store.get_profile(profile.id)
    assert stored.deleted is True
    assert stored.release.deleted is True
    assert provider.count("full_report") == 1


@pytest.mark.asyncio
async def test_provider_delete_not_found_counts_as_deleted(ctx, provider, make_profile):
    profile = await make_profile("P1", "error")
    provider.fail["delete_profile"] = ProviderError("delete_profile", "gone", status_code=404)

    assert await ctx.reconciler.sweep() == {"cleaned_up": 1}
    assert (await ctx.store.get_profile(profile.id)).deleted is True


@pytest.mark.asyncio
async def test_archive_failure_is_retried(ctx, provider, storage, make_profile):
    profile = await make_profile("P1", "running")
    provider.states["P1"] = "stopped"
    provider.reports["P1"] = {"cvss": 3.0}
    storage.fail = True

    assert await ctx.reconciler.sweep() == {"deferred": 1}
    stored = await ctx.store.get_profile(profile.id)
    assert stored.status == "success"
    assert stored.report_key is None
    assert stored.deleted is False
    assert provider.deleted == []

    storage.fail = False
    assert await ctx.reconciler.sweep() == {"success": 1}
    stored = await ctx.store.get_profile(profile.id)
    assert stored.report_key in storage.objects
    assert stored.deleted is True
    assert provider.count("full_report") == 2


@pytest.mark.asyncio
async def test_second_sweep_is_idle(ctx, provider, make_profile):
    await make_profile("P1", "running")
    provider.states["P1"] = "unable_to_complete"

    assert await ctx.reconciler.sweep() == {"error": 1}
    assert await ctx.reconciler.sweep() == {}


# ── In-progress updates ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_status_change_is_echoed(ctx, provider, platform, make_release, make_profile):
    release = await make_release()
    profile = await make_profile("P1", "starting", release=release)
    provider.states["P1"] = "running"

    assert await ctx.reconciler.sweep() == {"updated": 1}
    assert (await ctx.store.get_profile(profile.id)).status == "running"
    assert platform.updates[-1]["state"] == "pending"
    assert platform.updates[-1]["description"] == "Security scan running"


@pytest.mark.asyncio
async def test_status_change_survives_platform_outage(ctx, provider, platform, make_release, make_profile):
    release = await make_release()
    profile = await make_profile("P1", "starting", release=release)
    provider.states["P1"] = "stopping"
    platform.fail = True

    assert await ctx.reconciler.sweep() == {"updated": 1}
    assert (await ctx.store.get_profile(profile.id)).status == "stopping"


@pytest.mark.asyncio
async def test_unchanged_status(ctx, provider, platform, make_release, make_profile):
    release = await make_release()
    await make_profile("P1", "running", release=release)
    provider.states["P1"] = "running"

    assert await ctx.reconciler.sweep() == {"unchanged": 1}
    assert platform.updates == []


@pytest.mark.asyncio
async def test_unknown_provider_state_is_ignored(ctx, provider, make_profile):
    profile = await make_profile("P1", "running")
    provider.states["P1"] = "queued_for_maintenance"

    assert await ctx.reconciler.sweep() == {"unchanged": 1}
    assert (await ctx.store.get_profile(profile.id)).status == "running"


@pytest.mark.asyncio
async def test_adhoc_profile_never_touches_platform(ctx, provider, platform, make_profile):
    await make_profile("P1", "running")
    provider.states["P1"] = "stopped"
    provider.reports["P1"] = {"cvss": 9.5}

    assert await ctx.reconciler.sweep() == {"fail": 1}
    assert platform.updates == []


@pytest.mark.asyncio
async def test_crash_is_isolated(ctx, provider, make_profile):
    crashing = await make_profile("P1", "running")
    healthy = await make_profile("P2", "running")
    provider.crash_tokens.add("P1")
    provider.states["P2"] = "stopped"
    provider.reports["P2"] = {"cvss": 1.0}

    assert await ctx.reconciler.sweep() == {"crashed": 1, "success": 1}
    assert (await ctx.store.get_profile(crashing.id)).deleted is False
    assert (await ctx.store.get_profile(healthy.id)).deleted is True


@pytest.mark.asyncio
async def test_deleted_release_hides_profile(ctx, provider, make_release, make_profile):
    release = await make_release()
    await make_profile("P1", "running", release=release)
    await ctx.store.soft_delete_release(release.id)

    assert await ctx.reconciler.sweep() == {}
    assert provider.count("scan_status") == 0


@pytest.mark.asyncio
async def test_failed_status_write_records_one_error(ctx, provider, make_profile, count_errors, monkeypatch):
    profile = await make_profile("P1", "running")
    provider.states["P1"] = "unable_to_resolve"
    real_update = ctx.store.update_status
    attempts = []

    async def flaky_update(profile_id, status):
        attempts.append(status)
        if len(attempts) == 1:
            raise PersistenceError("database is locked")
        await real_update(profile_id, status)

    monkeypatch.setattr(ctx.store, "update_status", flaky_update)

    assert await ctx.reconciler.sweep() == {"deferred": 1}
    assert await count_errors(profile.id) == 0
    assert provider.deleted == []
    assert (await ctx.store.get_profile(profile.id)).deleted is False

    assert await ctx.reconciler.sweep() == {"error": 1}
    assert await count_errors(profile.id) == 1
    assert (await ctx.store.get_profile(profile.id)).deleted is True

    assert await ctx.reconciler.sweep() == {}
    assert await count_errors(profile.id) == 1

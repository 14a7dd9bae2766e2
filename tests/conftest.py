"""pytest fixtures shared across all tests."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from scangate.core.config import Settings
from scangate.core.context import AppContext
from scangate.core.errors import ArchiveError, PlatformReportError, ProviderError, ReportFetchError
from scangate.models.base import Base
from scangate.models.scan_error import ScanError
from scangate.models.scan_profile import ScanProfile
from scangate.services.store import ScanStore

# SQLite in-memory, one connection shared by every session of a test
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"
CALLBACK_URL = "https://scangate.test"
SECRET = "test-secret"


# ── Fakes for the external systems ───────────────────────────────────────────

class FakeProvider:
    """In-memory scan provider. Put a ProviderError in ``fail`` to break an operation."""

    def __init__(self) -> None:
        self.domains: list[dict[str, Any]] = [{"name": "example.com", "token": "T1"}]
        self.states: dict[str, str] = {}
        self.reports: dict[str, dict[str, Any]] = {}
        self.fail: dict[str, ProviderError] = {}
        self.crash_tokens: set[str] = set()
        self.calls: list[tuple[str, str | None]] = []
        self.created: list[tuple[str, str]] = []
        self.deleted: list[str] = []
        self._next = 0

    def _call(self, operation: str, token: str | None = None) -> None:
        self.calls.append((operation, token))
        if operation in self.fail:
            raise self.fail[operation]

    async def list_domains(self) -> list[dict[str, Any]]:
        self._call("list_domains")
        return list(self.domains)

    async def create_profile(self, domain_token: str, host: str) -> dict[str, Any]:
        self._call("create_profile")
        self._next += 1
        self.created.append((domain_token, host))
        return {"name": f"scangate-{host}", "endpoint": host, "token": f"P{self._next}"}

    async def delete_profile(self, token: str) -> None:
        self._call("delete_profile", token)
        self.deleted.append(token)

    async def start_scan(self, token: str) -> None:
        self._call("start_scan", token)
        self.states.setdefault(token, "starting")

    async def get_scan_status(self, token: str) -> str:
        if token in self.crash_tokens:
            raise RuntimeError("provider client bug")
        self._call("scan_status", token)
        return self.states.get(token, "starting")

    async def get_full_report(self, token: str) -> dict[str, Any]:
        self.calls.append(("full_report", token))
        if "full_report" in self.fail:
            exc = self.fail["full_report"]
            raise ReportFetchError(exc.operation, str(exc), status_code=exc.status_code)
        return self.reports[token]

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)


class FakePlatform:
    def __init__(self) -> None:
        self.apps: dict[str, dict[str, Any]] = {"my-app": {"web_url": "https://my-app.example.com"}}
        self.statuses: list[dict[str, Any]] = []
        self.updates: list[dict[str, Any]] = []
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise PlatformReportError("platform down", status_code=503)

    async def get_app(self, token: str, app_name: str) -> dict[str, Any]:
        self._check()
        return self.apps[app_name]

    async def create_release_status(self, token, app_name, release, state, description) -> str:
        self._check()
        self.statuses.append({"token": token, "app": app_name, "release": release, "state": state})
        return "status-1"

    async def update_release_status(
        self, token, app_name, release, status_id, state, description, target_url=None
    ) -> None:
        self._check()
        self.updates.append(
            {
                "token": token,
                "app": app_name,
                "release": release,
                "status_id": status_id,
                "state": state,
                "description": description,
                "target_url": target_url,
            }
        )

    async def update_release_status_with_error(
        self, token, app_name, release, status_id, error_id, error_type
    ) -> None:
        await self.update_release_status(
            token,
            app_name,
            release,
            status_id,
            "error",
            f"Scan failed - {error_type}",
            f"{CALLBACK_URL}/errors/{error_id}",
        )

    def states(self) -> list[str]:
        return [u["state"] for u in self.updates]


class FakeStorage:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.metadata: dict[str, dict[str, str]] = {}
        self.fail = False

    async def put(self, key: str, body: bytes, metadata: dict[str, str] | None = None) -> None:
        if self.fail:
            raise ArchiveError(f"Unable to upload {key}")
        self.objects[key] = body
        self.metadata[key] = metadata or {}

    async def get(self, key: str) -> bytes:
        if self.fail or key not in self.objects:
            raise ArchiveError(f"Unable to read {key}")
        return self.objects[key]


# ── Database ─────────────────────────────────────────────────────────────────

@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DB_URL,
        app_debug=True,
        secret_key=SECRET,
        callback_url=CALLBACK_URL,
        max_concurrent_profiles=1,
        scan_timeout_minutes=50,
        auth_host=None,
    )


@pytest_asyncio.fixture
async def engine():
    """Create a fresh in-memory SQLite engine per test function."""
    eng = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=True)


# ── Context ──────────────────────────────────────────────────────────────────

@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def ctx(settings, session_factory, provider, platform, storage) -> AppContext:
    return AppContext(
        settings=settings,
        store=ScanStore(session_factory, secret_key=SECRET),
        provider=provider,
        platform=platform,
        storage=storage,
    )


@pytest.fixture
def make_release(ctx):
    async def _make(release: str = "rel-1", app_name: str = "my-app", status_id: str | None = "status-1"):
        return await ctx.store.create_release(
            release=release,
            app_name=app_name,
            status_id=status_id,
            platform_token="platform-token",
            payload={"action": "released", "key": app_name, "release": {"id": release}},
        )

    return _make


@pytest.fixture
def make_profile(ctx):
    async def _make(
        token: str = "P1",
        status: str = "running",
        *,
        release=None,
        created_at: datetime | None = None,
        success_threshold: float | None = None,
        report_key: str | None = None,
    ) -> ScanProfile:
        profile = ScanProfile(
            id=uuid.uuid4(),
            provider_token=token,
            name=f"scangate-{token.lower()}.example.com",
            endpoint=f"{token.lower()}.example.com",
            target_app="my-app",
            target_url=f"https://{token.lower()}.example.com",
            release_id=release.id if release else None,
            status=status,
            report_key=report_key,
            success_threshold=success_threshold,
            deleted=False,
            created_at=created_at or datetime.now(timezone.utc),
        )
        return await ctx.store.add_profile(profile)

    return _make


@pytest.fixture
def count_errors(session_factory):
    async def _count(profile_id: uuid.UUID | None = None) -> int:
        query = select(func.count()).select_from(ScanError)
        if profile_id is not None:
            query = query.where(ScanError.profile_id == profile_id)
        async with session_factory() as session:
            return (await session.execute(query)).scalar_one()

    return _count


@pytest_asyncio.fixture
async def client(ctx):
    """HTTPX async test client wired to the FastAPI app with the test context."""
    from scangate.api.app import create_app

    app = create_app(ctx)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

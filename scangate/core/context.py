"""Process-wide handle on the database, the external clients and the services.

The API lifespan and the worker command each build one with
:func:`open_context` and pass it down; nothing keeps a global client.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scangate.core.config import Settings
from scangate.core.database import create_engine, create_schema, create_session_factory
from scangate.core.logging import get_logger
from scangate.gateways.platform import PlatformGateway
from scangate.gateways.provider import ProviderGateway
from scangate.gateways.storage import ReportStorage
from scangate.services.notifier import StatusNotifier
from scangate.services.provisioner import Provisioner
from scangate.services.reconciler import Reconciler
from scangate.services.store import ScanStore

logger = get_logger(__name__)


@dataclass
class AppContext:
    settings: Settings
    store: ScanStore
    provider: ProviderGateway
    platform: PlatformGateway
    storage: ReportStorage
    notifier: StatusNotifier = field(init=False)
    provisioner: Provisioner = field(init=False)
    reconciler: Reconciler = field(init=False)

    def __post_init__(self) -> None:
        s = self.settings
        self.notifier = StatusNotifier(
            self.store, self.platform, callback_url=s.callback_url, secret_key=s.secret_key
        )
        self.provisioner = Provisioner(self.provider)
        self.reconciler = Reconciler(
            self.store,
            self.provider,
            self.storage,
            self.notifier,
            timeout_minutes=s.scan_timeout_minutes,
            default_threshold=s.default_success_threshold,
            max_concurrency=s.max_concurrent_profiles,
        )

    @classmethod
    def build(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        provider_client: httpx.AsyncClient,
        platform_client: httpx.AsyncClient,
        storage: ReportStorage,
    ) -> "AppContext":
        return cls(
            settings=settings,
            store=ScanStore(session_factory, secret_key=settings.secret_key),
            provider=ProviderGateway(provider_client, name_prefix=settings.profile_name_prefix),
            platform=PlatformGateway(
                platform_client,
                callback_url=settings.callback_url,
                context=settings.status_context,
                name=settings.status_name,
            ),
            storage=storage,
        )


@asynccontextmanager
async def open_context(settings: Settings) -> AsyncIterator[AppContext]:
    """Own the engine and HTTP clients for the lifetime of the block."""
    engine = create_engine(settings)
    if settings.auto_create_schema:
        await create_schema(engine)

    provider_client = ProviderGateway.build_client(
        settings.provider_api_url, settings.provider_api_key, settings.http_timeout
    )
    platform_client = PlatformGateway.build_client(settings.platform_api_url, settings.http_timeout)
    try:
        yield AppContext.build(
            settings,
            create_session_factory(engine),
            provider_client=provider_client,
            platform_client=platform_client,
            storage=ReportStorage.from_settings(settings),
        )
    finally:
        await provider_client.aclose()
        await platform_client.aclose()
        await engine.dispose()
        logger.info("Application context closed")

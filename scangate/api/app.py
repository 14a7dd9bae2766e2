"""FastAPI application factory with lifespan management."""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from scangate import __version__
from scangate.api.routers import hooks, profiles, reports
from scangate.core.config import get_settings
from scangate.core.context import AppContext, open_context
from scangate.core.logging import configure_logging, get_logger
from scangate.core.scheduler import SweepScheduler

logger = get_logger(__name__)

# Status images referenced by release statuses (pending_sm.png, ...)
STATIC_DIR = Path(__file__).parent / "static"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    configure_logging()
    async with AsyncExitStack() as stack:
        ctx: AppContext | None = app.state.ctx
        if ctx is None:
            ctx = await stack.enter_async_context(open_context(get_settings()))
            app.state.ctx = ctx
        logger.info("Starting scangate", debug=ctx.settings.app_debug)

        worker: asyncio.Task | None = None
        if ctx.settings.embedded_worker:
            scheduler = SweepScheduler(
                ctx.reconciler,
                interval_seconds=ctx.settings.worker_interval_minutes * 60,
                allow_overlap=ctx.settings.allow_overlapping_sweeps,
            )
            worker = asyncio.create_task(scheduler.run_forever(), name="reconciler")

        yield

        if worker is not None:
            worker.cancel()
            await asyncio.gather(worker, return_exceptions=True)
    logger.info("scangate stopped")


def create_app(ctx: AppContext | None = None) -> FastAPI:
    """Build the app; pass *ctx* to reuse an existing context (tests, embedding)."""
    app = FastAPI(
        title="scangate",
        description="Security scan gate for platform releases",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.ctx = ctx

    api_prefix = "/v1"
    app.include_router(hooks.router, prefix=api_prefix)
    app.include_router(profiles.router, prefix=api_prefix)
    # Linked from release statuses, so they live at the root
    app.include_router(reports.router)

    if STATIC_DIR.exists():
        app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    return app

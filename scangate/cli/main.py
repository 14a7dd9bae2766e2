"""scangate CLI entry point: `scangate` command group."""

from __future__ import annotations

import asyncio
import signal

import click

from scangate.cli.commands.profiles import profiles_cmd
from scangate.cli.commands.scan import scan_cmd
from scangate.cli.output import console, outcomes_table


@click.group()
@click.version_option(package_name="scangate")
@click.option(
    "--api-url",
    default="http://localhost:9000",
    envvar="SCANGATE_API_URL",
    show_default=True,
    help="Base URL of the scangate API server",
)
@click.pass_context
def cli(ctx: click.Context, api_url: str) -> None:
    """scangate: security scan gate for platform releases.

    \b
    Processes:
      scangate serve     API + release webhook
      scangate worker    reconciler loop
    \b
    Quick start:
      scangate scan run --url https://app.example.com
      scangate profiles list
    """
    ctx.ensure_object(dict)
    ctx.obj["api_url"] = api_url.rstrip("/")


cli.add_command(scan_cmd)
cli.add_command(profiles_cmd)


@cli.command("serve")
@click.option("--host", default=None, help="Bind host [default: APP_HOST]")
@click.option("--port", default=None, type=int, help="Bind port [default: APP_PORT]")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload (dev mode)")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the scangate API server."""
    import uvicorn

    from scangate.core.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "scangate.api.app:create_app",
        factory=True,
        host=host or settings.app_host,
        port=port or settings.app_port,
        reload=reload,
        log_level="info",
    )


@cli.command("worker")
@click.option(
    "--interval",
    type=float,
    default=None,
    help="Minutes between sweeps [default: WORKER_INTERVAL_MINUTES]",
)
def worker(interval: float | None) -> None:
    """Run the reconciler until SIGTERM / Ctrl-C."""
    from scangate.core.config import get_settings

    settings = get_settings()
    minutes = interval if interval and interval > 0 else settings.worker_interval_minutes
    console.print(f"[bold cyan]Reconciler[/bold cyan] sweeping every {minutes:g} minutes")
    try:
        asyncio.run(_run_worker(settings, minutes))
    except KeyboardInterrupt:
        pass


@cli.command("sweep")
def sweep() -> None:
    """Run a single reconciliation sweep and print the outcome."""
    from scangate.core.config import get_settings

    outcomes = asyncio.run(_run_sweep(get_settings()))
    if outcomes:
        console.print(outcomes_table(outcomes))
    else:
        console.print("[dim]No pending scan profiles.[/dim]")


async def _run_worker(settings, minutes: float) -> None:
    from scangate.core.context import open_context
    from scangate.core.logging import configure_logging
    from scangate.core.scheduler import SweepScheduler

    configure_logging()
    async with open_context(settings) as ctx:
        scheduler = SweepScheduler(
            ctx.reconciler,
            interval_seconds=minutes * 60,
            allow_overlap=settings.allow_overlapping_sweeps,
        )
        task = asyncio.create_task(scheduler.run_forever())
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, task.cancel)
        try:
            await task
        except asyncio.CancelledError:
            pass


async def _run_sweep(settings) -> dict[str, int]:
    from scangate.core.context import open_context
    from scangate.core.logging import configure_logging

    configure_logging()
    async with open_context(settings) as ctx:
        return await ctx.reconciler.sweep()


if __name__ == "__main__":
    cli()

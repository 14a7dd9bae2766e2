"""CLI commands for inspecting scan profiles."""

from __future__ import annotations

import click

from scangate.cli.output import console, profiles_table


@click.group("profiles")
def profiles_cmd() -> None:
    """Inspect scan profiles."""


@profiles_cmd.command("list")
@click.option("--all", "include_deleted", is_flag=True, default=False, help="Include finished (deleted) profiles")
@click.pass_context
def profiles_list(ctx: click.Context, include_deleted: bool) -> None:
    """List scan profiles, newest first."""
    import httpx

    api_url: str = ctx.obj["api_url"]
    try:
        r = httpx.get(
            f"{api_url}/v1/profiles",
            params={"all": str(include_deleted).lower()},
            timeout=10,
        )
        r.raise_for_status()
        console.print(profiles_table(r.json()["items"]))
    except httpx.ConnectError:
        console.print(
            f"[red]Cannot connect to API at {api_url}.[/red] "
            "Is the server running? (scangate serve)"
        )
        raise SystemExit(1)
    except httpx.HTTPError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

"""CLI commands for ad-hoc scans."""

from __future__ import annotations

import click

from scangate.cli.output import console, status_style


@click.group("scan")
def scan_cmd() -> None:
    """Ad-hoc security scans."""


@scan_cmd.command("run")
@click.option("--url", required=True, help="URL of the deployed app (e.g. https://app.example.com)")
@click.option("--app", "app_name", default=None, help="Platform app name, for display")
@click.option(
    "--threshold",
    type=click.FloatRange(0, 10),
    default=None,
    help="CVSS cutoff for this scan (default: server setting)",
)
@click.option("--token", envvar="SCANGATE_TOKEN", default=None, help="Bearer token for the auth host")
@click.pass_context
def scan_run(
    ctx: click.Context,
    url: str,
    app_name: str | None,
    threshold: float | None,
    token: str | None,
) -> None:
    """Start a scan outside of a release.

    Example:

        scangate scan run --url https://app.example.com --app my-app
    """
    import httpx
    from rich.text import Text

    api_url: str = ctx.obj["api_url"]
    headers = {"Authorization": f"Bearer {token}"} if token else {}

    console.print(f"[bold cyan]Starting scan[/bold cyan] of [bold]{url}[/bold]")
    try:
        r = httpx.post(
            f"{api_url}/v1/scans",
            json={"url": url, "app_name": app_name, "success_threshold": threshold},
            headers=headers,
            timeout=60,
        )
        r.raise_for_status()
    except httpx.ConnectError:
        console.print(f"[red]Cannot connect to API at {api_url}.[/red]")
        raise SystemExit(1)
    except httpx.HTTPStatusError as e:
        detail = e.response.json().get("detail", e.response.text) if e.response.content else ""
        console.print(f"[red]API error {e.response.status_code}:[/red] {detail}")
        raise SystemExit(1)

    profile = r.json()
    console.print(f"  Profile ID: [dim]{profile['id']}[/dim]")
    console.print(f"  Endpoint:   {profile['endpoint']}")
    console.print("  Status:     ", end="")
    console.print(Text(profile["status"], style=status_style(profile["status"])))
    console.print(f"\n[dim]Report (once finished): {api_url}/reports/{profile['id']}[/dim]")

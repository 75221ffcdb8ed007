"""MainTrack CLI — operator views of the maintenance backend.

Usage:
    maintrack stats                              # Request counts per status
    maintrack requests --status OPEN             # List requests with filters
    maintrack dashboard                          # Today's board, workload, downtime
    maintrack purge-subscriptions                # Drop dead push subscriptions
    maintrack vapid-key                          # Public key for browser subscribe()

Every command talks to the API over HTTP. Authenticate with --token or
MAINTRACK_TOKEN (a JWT issued by your identity provider).
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from maintrack import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("MAINTRACK_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(token: Optional[str] = None) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the MainTrack backend."""
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(base_url=_api_url(), headers=headers, timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Inside an already running loop (e.g. an async test) the coroutine is
    offloaded to a worker thread with its own loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _require_token(token: Optional[str]) -> str:
    tok = token or os.environ.get("MAINTRACK_TOKEN")
    if not tok:
        click.secho(
            "Error: --token required (or set MAINTRACK_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return tok


async def _get(token: Optional[str], path: str, params: Optional[dict] = None):
    async with _client(token) as c:
        r = await c.get(path, params=params)
        _check(r)
        return r.json()


def _check(r: httpx.Response) -> None:
    """Exit with the API's error detail on a non-2xx response."""
    if r.is_success:
        return
    try:
        detail = r.json().get("detail", r.text)
    except ValueError:
        detail = r.text
    click.secho(f"Error {r.status_code}: {detail}", fg="red", err=True)
    sys.exit(1)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k, "—"))[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


def _status_color(status: str) -> str:
    colors = {
        "OPEN": "white",
        "IN_PROGRESS": "yellow",
        "COMPLETED": "green",
        "CANCELED": "red",
    }
    return colors.get(status, "white")


def _flatten(req: dict) -> dict:
    """Pull nested names up so _print_table can address them by key."""
    return {
        **req,
        "machine_name": (req.get("machine") or {}).get("name", "—"),
        "assignee_name": (req.get("assignee") or {}).get("full_name", "unassigned"),
        "created": (req.get("created_at") or "")[:16].replace("T", " "),
    }


token_option = click.option(
    "--token", envvar="MAINTRACK_TOKEN", help="JWT (or set MAINTRACK_TOKEN)"
)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="maintrack")
def main():
    """MainTrack — maintenance request tracking from the terminal."""


# ---------------------------------------------------------------------------
# maintrack stats
# ---------------------------------------------------------------------------


@main.command()
@token_option
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def stats(token: Optional[str], as_json: bool):
    """Show request counts per status."""
    data = _run(_get(_require_token(token), "/api/v1/maintenance-requests/stats"))
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    click.secho(f"Total requests: {data['total']}", bold=True)
    for label, key, status in (
        ("Open", "open", "OPEN"),
        ("In progress", "in_progress", "IN_PROGRESS"),
        ("Completed", "completed", "COMPLETED"),
        ("Canceled", "canceled", "CANCELED"),
    ):
        click.echo(f"  {label:12s} {click.style(str(data[key]), fg=_status_color(status))}")


# ---------------------------------------------------------------------------
# maintrack requests
# ---------------------------------------------------------------------------


@main.command()
@token_option
@click.option(
    "--status", "-s",
    type=click.Choice(["OPEN", "IN_PROGRESS", "COMPLETED", "CANCELED"], case_sensitive=False),
)
@click.option(
    "--priority", "-p",
    type=click.Choice(["LOW", "MEDIUM", "HIGH", "URGENT"], case_sensitive=False),
)
@click.option("--machine-id", "-m", help="Machine UUID")
@click.option("--from", "start_date", help="Created on or after (YYYY-MM-DD)")
@click.option("--to", "end_date", help="Created on or before (YYYY-MM-DD)")
@click.option("--page", default=1, show_default=True, type=click.IntRange(min=1))
@click.option("--limit", default=10, show_default=True, type=click.IntRange(1, 100))
def requests(token, status, priority, machine_id, start_date, end_date, page, limit):
    """List maintenance requests, newest first."""
    params = {"page": page, "limit": limit}
    for key, value in (
        ("status", status.upper() if status else None),
        ("priority", priority.upper() if priority else None),
        ("machine_id", machine_id),
        ("start_date", start_date),
        ("end_date", end_date),
    ):
        if value:
            params[key] = value

    data = _run(_get(_require_token(token), "/api/v1/maintenance-requests", params))
    rows = [_flatten(r) for r in data["data"]]
    if not rows:
        click.echo("No maintenance requests found.")
        return

    _print_table(rows, [
        ("Created", "created", 16),
        ("Status", "status", 11),
        ("Priority", "priority", 8),
        ("Machine", "machine_name", 20),
        ("Title", "title", 40),
        ("Assignee", "assignee_name", 20),
    ])
    click.echo(f"\nPage {data['page']}/{max(data['total_pages'], 1)} ({data['total']} total)")


# ---------------------------------------------------------------------------
# maintrack dashboard
# ---------------------------------------------------------------------------


@main.command()
@token_option
def dashboard(token: Optional[str]):
    """Show today's counts, technician workload, downtime and the weekly chart."""
    data = _run(_get(_require_token(token), "/api/v1/maintenance-requests/dashboard"))

    today = data["today"]
    click.secho("Today", bold=True)
    click.echo(
        f"  created {today['total']}  open {today['open']}  "
        f"in progress {today['in_progress']}  completed {today['completed']}  "
        f"canceled {today['canceled']}"
    )

    click.echo()
    click.secho("Technician workload", bold=True)
    if data["technician_workload"]:
        _print_table(data["technician_workload"], [
            ("Technician", "technician_name", 24),
            ("Open", "open", 5),
            ("Active", "in_progress", 6),
            ("Done", "completed", 5),
            ("Load", "active_load", 5),
        ])
    else:
        click.echo("  (no assignments)")

    downtime = data["downtime"]
    click.echo()
    click.secho(
        f"Average downtime: {downtime['average_minutes']} min "
        f"over {downtime['sample_size']} completed request(s)",
        bold=True,
    )

    click.echo()
    click.secho("Last 7 days (opened / completed / canceled)", bold=True)
    for day in data["chart"]:
        click.echo(f"  {day['day']}  {day['open']:4d} {day['completed']:4d} {day['canceled']:4d}")


# ---------------------------------------------------------------------------
# maintrack purge-subscriptions
# ---------------------------------------------------------------------------


@main.command("purge-subscriptions")
@token_option
@click.confirmation_option(prompt="Delete inactive and stale push subscriptions?")
def purge_subscriptions(token: Optional[str]):
    """Delete inactive push subscriptions and those unused for the stale period."""
    data = _run(_purge_impl(_require_token(token)))
    click.secho(f"Removed {data['removed']} subscription(s)", fg="green")


async def _purge_impl(token: str) -> dict:
    async with _client(token) as c:
        r = await c.post("/api/v1/notifications/cleanup")
        _check(r)
        return r.json()


# ---------------------------------------------------------------------------
# maintrack vapid-key
# ---------------------------------------------------------------------------


@main.command("vapid-key")
def vapid_key():
    """Print the VAPID public key browsers subscribe with."""
    data = _run(_get(None, "/api/v1/notifications/vapid-public-key"))
    if not data.get("public_key"):
        click.secho("No VAPID public key configured on the server.", fg="yellow")
        sys.exit(1)
    click.echo(data["public_key"])


if __name__ == "__main__":
    main()

"""CLI: ticketdesk auth login|status|logout"""

from typing import Optional

import click
from rich.console import Console

from ticketdesk.errors import TicketDeskError

console = Console()


def _load_config() -> dict:
    from ticketdesk.cli.main import _load_config
    return _load_config()


def _save_config(cfg: dict) -> None:
    from ticketdesk.cli.main import _save_config
    _save_config(cfg)


def _run(coro):
    from ticketdesk.cli.main import _run
    return _run(coro)


@click.group()
def auth():
    """Store credentials."""


@auth.command("login")
@click.option("--base-url", default=None, help="Store base URL")
@click.option("--realtime-url", default=None, help="Realtime server URL (defaults to base URL)")
@click.option("--user-id", default=None, help="Admin user id stamped on replies")
def auth_login(base_url: Optional[str], realtime_url: Optional[str], user_id: Optional[str]):
    """Save an API key and admin access token."""
    from ticketdesk.cli.main import DEFAULT_BASE_URL
    from ticketdesk.client import AsyncTicketDesk

    cfg = _load_config()
    url = base_url or cfg.get("base_url", DEFAULT_BASE_URL)
    api_key = click.prompt("API key", hide_input=True)
    token = click.prompt("Admin access token", hide_input=True, default="", show_default=False)

    async def _check():
        client = AsyncTicketDesk(api_key=api_key, access_token=token or None, base_url=url)
        try:
            await client.store.list_canned_responses()
        finally:
            await client.close()

    try:
        with console.status("Checking credentials..."):
            _run(_check())
    except TicketDeskError as e:
        console.print(f"[red]Login failed: {e}[/red]")
        raise SystemExit(1)

    _save_config({**cfg, "api_key": api_key, "access_token": token or None, "base_url": url,
                  "realtime_url": realtime_url or cfg.get("realtime_url"),
                  "user_id": user_id or cfg.get("user_id")})
    console.print("[green]Logged in.[/green]")
    console.print("[dim]Credentials saved to ~/.ticketdesk/config.json[/dim]")


@auth.command("status")
def auth_status():
    """Show current auth status."""
    cfg = _load_config()
    if cfg.get("api_key"):
        console.print(f"[green]Logged in[/green] to {cfg.get('base_url')} (user: {cfg.get('user_id') or 'unknown'})")
    else:
        console.print("[yellow]Not logged in. Run `ticketdesk auth login`.[/yellow]")


@auth.command("logout")
def auth_logout():
    """Clear saved credentials."""
    _save_config({})
    console.print("[green]Logged out.[/green]")

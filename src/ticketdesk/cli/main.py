"""
ticketdesk CLI — `ticketdesk` command.

Commands:
  ticketdesk auth login        Save store URL and credentials
  ticketdesk tickets <cmd>     Show a ticket, change status/priority, add notes
  ticketdesk reply <ref> <msg> One-shot admin reply
  ticketdesk watch <ref>       Live chat on a ticket
"""

import asyncio
import json
import logging
from pathlib import Path

try:
    import click
    from rich.console import Console
except ImportError:
    raise SystemExit("CLI requires extras: pip install ticketdesk[cli]")

from ticketdesk.client import AsyncTicketDesk
from ticketdesk.transport.http import DEFAULT_BASE_URL

console = Console()
CONFIG_FILE = Path.home() / ".ticketdesk" / "config.json"


def _load_config() -> dict:
    try:
        return json.loads(CONFIG_FILE.read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def _save_config(cfg: dict) -> None:
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(cfg, indent=2))


def _get_client() -> AsyncTicketDesk:
    cfg = _load_config()
    if not cfg.get("api_key"):
        console.print("[red]Not logged in. Run `ticketdesk auth login` first.[/red]")
        raise SystemExit(1)
    return AsyncTicketDesk(
        api_key=cfg["api_key"],
        access_token=cfg.get("access_token"),
        base_url=cfg.get("base_url", DEFAULT_BASE_URL),
        realtime_url=cfg.get("realtime_url"),
        viewer_id=cfg.get("user_id"),
    )


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr")
def main(verbose: bool):
    """ticketdesk — live support ticket chat."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s %(message)s",
    )


# Register subcommands from separate modules
from ticketdesk.cli.auth import auth
from ticketdesk.cli.chat import reply_cmd, watch_cmd
from ticketdesk.cli.tickets import tickets

main.add_command(auth)
main.add_command(reply_cmd)
main.add_command(watch_cmd)
main.add_command(tickets)


if __name__ == "__main__":
    main()

"""CLI: ticketdesk tickets show|status|priority|note|canned"""

import json

import click
from rich.console import Console
from rich.table import Table

from ticketdesk.errors import TicketDeskError, TicketNotFoundError
from ticketdesk.models.message import SenderRole
from ticketdesk.models.ticket import TicketPriority, TicketStatus

console = Console()


def _get_client():
    from ticketdesk.cli.main import _get_client
    return _get_client()


def _run(coro):
    from ticketdesk.cli.main import _run
    return _run(coro)


def _run_or_exit(coro):
    try:
        return _run(coro)
    except TicketNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
    except TicketDeskError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1)


@click.group()
def tickets():
    """Ticket inspection and admin actions."""


@tickets.command("show")
@click.argument("ticket_ref")
@click.option("--json-output", "--json", is_flag=True)
def tickets_show(ticket_ref, json_output):
    """Show a ticket and its conversation."""

    async def _show():
        client = _get_client()
        try:
            ticket = await client.get_ticket(ticket_ref)
            messages = await client.store.list_messages(ticket.id)
            notes = await client.store.list_internal_notes(ticket.id)
            profile = await client.store.get_requester_profile(ticket.user_id) if ticket.user_id else None
        finally:
            await client.close()

        if json_output:
            click.echo(json.dumps({
                "ticket": ticket.model_dump(mode="json"),
                "messages": [m.model_dump(mode="json") for m in messages],
                "internal_notes": [n.model_dump(mode="json") for n in notes],
            }, indent=2))
            return

        console.print(f"[bold]{ticket.reference}[/bold] {ticket.subject}")
        console.print(f"[dim]{ticket.category} · {ticket.status.value} · {ticket.priority.value} · "
                      f"{ticket.display_name(profile)} ({'Registered User' if ticket.user_id else 'Guest'})[/dim]")
        table = Table(show_header=True)
        table.add_column("Time", style="dim")
        table.add_column("From")
        table.add_column("Message")
        for m in messages:
            sender = "Support Team" if m.sender_role is SenderRole.ADMIN else ticket.display_name(profile)
            table.add_row(m.created_at.strftime("%b %d %H:%M"), sender, m.body)
        console.print(table)
        for note in notes:
            console.print(f"[yellow]Note ({note.admin_name or 'Admin'}):[/yellow] {note.note}")

    _run_or_exit(_show())


@tickets.command("status")
@click.argument("ticket_ref")
@click.argument("status", type=click.Choice([s.value for s in TicketStatus]))
def tickets_status(ticket_ref, status):
    """Set a ticket's status."""

    async def _update():
        client = _get_client()
        try:
            return await client.update_ticket(ticket_ref, status=TicketStatus(status))
        finally:
            await client.close()

    ticket = _run_or_exit(_update())
    console.print(f"[green]{ticket.reference} is now {ticket.status.value}.[/green]")


@tickets.command("priority")
@click.argument("ticket_ref")
@click.argument("priority", type=click.Choice([p.value for p in TicketPriority]))
def tickets_priority(ticket_ref, priority):
    """Set a ticket's priority."""

    async def _update():
        client = _get_client()
        try:
            return await client.update_ticket(ticket_ref, priority=TicketPriority(priority))
        finally:
            await client.close()

    ticket = _run_or_exit(_update())
    console.print(f"[green]{ticket.reference} priority is now {ticket.priority.value}.[/green]")


@tickets.command("note")
@click.argument("ticket_ref")
@click.argument("note")
def tickets_note(ticket_ref, note):
    """Add an internal (admin-only) note."""

    async def _note():
        client = _get_client()
        try:
            ticket = await client.get_ticket(ticket_ref)
            await client.store.add_internal_note(ticket.id, note)
        finally:
            await client.close()

    _run_or_exit(_note())
    console.print("[green]Internal note added.[/green]")


@tickets.command("canned")
@click.option("--category", default=None)
def tickets_canned(category):
    """List canned responses."""

    async def _list():
        client = _get_client()
        try:
            return await client.store.list_canned_responses(category)
        finally:
            await client.close()

    responses = _run_or_exit(_list())
    table = Table(title="Canned responses")
    table.add_column("ID", style="bold")
    table.add_column("Title")
    table.add_column("Content")
    for r in responses:
        table.add_row(r.id, r.title, r.content)
    console.print(table)

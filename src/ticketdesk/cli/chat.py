"""CLI: ticketdesk watch, ticketdesk reply"""

import asyncio
from typing import Optional

import click
from rich.console import Console

from ticketdesk.errors import TicketClosedError, TicketDeskError
from ticketdesk.models.message import Message, SenderRole
from ticketdesk.models.ticket import TicketPriority, TicketStatus
from ticketdesk.status import can_reply, status_after_reply
from ticketdesk.view import TicketView

console = Console()

HELP = "/status <status>  /priority <priority>  /reopen  /note <text>  /quit"


def _get_client():
    from ticketdesk.cli.main import _get_client
    return _get_client()


def _run(coro):
    from ticketdesk.cli.main import _run
    return _run(coro)


def _print_message(view: TicketView, m: Message) -> None:
    stamp = m.created_at.strftime("%H:%M")
    if m.sender_role is SenderRole.ADMIN:
        seen = " [dim]✓ seen[/dim]" if view.is_seen(m) else ""
        console.print(f"[blue]{stamp} Support Team:[/blue] {m.body}{seen}")
    else:
        console.print(f"[green]{stamp} {view.requester_name}:[/green] {m.body}")


class _Printer:
    """Prints transcript and presence changes as they arrive."""

    def __init__(self, view: TicketView):
        self.view = view
        self._printed: set[str] = set()
        self._typing = False
        self._notices = 0

    def catch_up(self) -> None:
        for m in self.view.messages:
            if not m.pending and m.id.value not in self._printed:
                self._printed.add(m.id.value)
                _print_message(self.view, m)

    def __call__(self, kind: str) -> None:
        if kind == "transcript":
            self.catch_up()
        elif kind == "typing":
            if self.view.other_typing and not self._typing:
                console.print(f"[dim]{self.view.requester_name} is typing...[/dim]")
            self._typing = self.view.other_typing
        elif kind == "ticket" and self.view.ticket:
            console.print(f"[dim][status: {self.view.ticket.status.value} · "
                          f"priority: {self.view.ticket.priority.value}][/dim]")
        elif kind == "notice":
            for notice in self.view.notices[self._notices:]:
                console.print(f"[red]{notice.message}[/red]")
            self._notices = len(self.view.notices)


async def _handle_command(view: TicketView, line: str) -> None:
    cmd, _, arg = line[1:].partition(" ")
    arg = arg.strip()
    if cmd == "status" and arg in {s.value for s in TicketStatus}:
        await view.set_status(TicketStatus(arg))
    elif cmd == "priority" and arg in {p.value for p in TicketPriority}:
        await view.set_priority(TicketPriority(arg))
    elif cmd == "reopen":
        await view.reopen()
    elif cmd == "note" and arg:
        if await view.add_internal_note(arg):
            console.print("[yellow]Internal note added.[/yellow]")
    else:
        console.print(f"[dim]{HELP}[/dim]")


@click.command("watch")
@click.argument("ticket_ref")
def watch_cmd(ticket_ref: str):
    """Live chat on a ticket."""

    async def _watch():
        client = _get_client()
        try:
            await client.connect()
            async with client.view(ticket_ref) as view:
                ticket = view.ticket
                console.print(f"[bold]{ticket.reference}[/bold] {ticket.subject} "
                              f"[dim]({view.requester_name}, {ticket.status.value})[/dim]")
                printer = _Printer(view)
                view.add_listener(printer)
                printer.catch_up()
                console.print(f"[cyan]Type a reply. {HELP}[/cyan]\n")
                while True:
                    line = await asyncio.to_thread(click.prompt, "You", prompt_suffix=": ")
                    if line.strip() in ("/quit", "/exit"):
                        break
                    if line.startswith("/"):
                        await _handle_command(view, line)
                        continue
                    try:
                        await view.send_reply(line)
                    except TicketClosedError as e:
                        console.print(f"[yellow]{e}[/yellow]")
        except (KeyboardInterrupt, EOFError, click.Abort):
            pass
        except TicketDeskError as e:
            console.print(f"[red]{e}[/red]")
        finally:
            await client.close()

    _run(_watch())


@click.command("reply")
@click.argument("ticket_ref")
@click.argument("message")
@click.option("--sender", type=click.Choice([r.value for r in SenderRole]), default=SenderRole.ADMIN.value)
def reply_cmd(ticket_ref: str, message: str, sender: str):
    """Send a one-shot reply."""

    client = _get_client()
    role = SenderRole(sender)

    async def _reply() -> Optional[Message]:
        try:
            ticket = await client.get_ticket(ticket_ref)
            if not can_reply(ticket.status):
                raise TicketClosedError(ticket.reference)
            sent = await client.store.insert_message(ticket.id, role, message, client.viewer_id)
            next_status = status_after_reply(ticket.status, role)
            if next_status is not ticket.status:
                await client.store.update_ticket(ticket.id, status=next_status)
            return sent
        finally:
            await client.close()

    try:
        sent = _run(_reply())
    except TicketDeskError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
    console.print(f"[green]Sent at {sent.created_at:%H:%M}.[/green]")

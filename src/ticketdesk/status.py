"""
Ticket status and priority rules.

Status changes are admin-directed commands: any status may move to any
other. The single automatic transition is an admin reply moving a ticket
that is not closed to waiting_customer. A closed ticket accepts no replies
until it is reopened.
"""

from typing import Any, Awaitable, Callable

from ticketdesk.models.message import SenderRole
from ticketdesk.models.ticket import TicketStatus

REOPEN_STATUS = TicketStatus.OPEN


def can_reply(status: TicketStatus) -> bool:
    return status is not TicketStatus.CLOSED


def status_after_reply(status: TicketStatus, sender: SenderRole) -> TicketStatus:
    """Status a ticket should move to once a reply from `sender` is stored."""
    if sender is SenderRole.ADMIN and status is not TicketStatus.CLOSED:
        return TicketStatus.WAITING_CUSTOMER
    return status


async def optimistic_update(
    apply: Callable[[], None],
    revert: Callable[[], None],
    write: Callable[[], Awaitable[Any]],
) -> Any:
    """Apply a local change, then persist it; undo the local change if the write fails.

    The write's exception is re-raised after revert so the caller can notify.
    """
    apply()
    try:
        return await write()
    except Exception:
        revert()
        raise

"""
ticketdesk — live support-ticket chat for the travel booking back office.

REST + Socket.IO client and view-model for ticket conversations.
"""

from ticketdesk.client import TicketDesk, AsyncTicketDesk
from ticketdesk.view import TicketView, Notice
from ticketdesk.errors import (
    TicketDeskError, StoreError, TicketNotFoundError, FetchError, SendError,
    MutationError, TicketClosedError, ConnectionError,
)
from ticketdesk.models.message import Message, SenderRole, DurableId, ProvisionalId
from ticketdesk.models.ticket import Ticket, TicketStatus, TicketPriority
from ticketdesk.models.envelope import SignalKind

__version__ = "0.1.0"
__all__ = [
    "TicketDesk",
    "AsyncTicketDesk",
    "TicketView",
    "Notice",
    "TicketDeskError",
    "StoreError",
    "TicketNotFoundError",
    "FetchError",
    "SendError",
    "MutationError",
    "TicketClosedError",
    "ConnectionError",
    "Message",
    "SenderRole",
    "DurableId",
    "ProvisionalId",
    "Ticket",
    "TicketStatus",
    "TicketPriority",
    "SignalKind",
]

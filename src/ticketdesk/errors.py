"""
ticketdesk error types.

In-session failures (send, status, priority) are caught at the operation
boundary and turned into notices; only view opening and direct store calls
raise these to the caller.
"""

from typing import Any, Optional


class TicketDeskError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class StoreError(TicketDeskError):
    def __init__(self, message: str, code: str = "store_error", details: Optional[dict[str, Any]] = None):
        super().__init__(code, message, details)


class TicketNotFoundError(StoreError):
    def __init__(self, ticket_ref: str):
        super().__init__(f"Ticket not found: {ticket_ref}", code="ticket_not_found", details={"ticket_ref": ticket_ref})


class FetchError(TicketDeskError):
    """Initial load of a ticket or its messages failed."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("fetch_failed", message, details)


class SendError(TicketDeskError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("send_failed", message, details)


class MutationError(TicketDeskError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("mutation_failed", message, details)


class TicketClosedError(TicketDeskError):
    def __init__(self, ticket_number: str):
        super().__init__(
            "ticket_closed",
            f"Ticket {ticket_number} is closed. Reopen it before replying.",
            {"ticket_number": ticket_number},
        )


class ConnectionError(TicketDeskError):
    def __init__(self, message: str):
        super().__init__("connection_error", message)

"""
Transcript store — tickets, messages, internal notes and canned responses.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar

from pydantic import ValidationError

from ticketdesk.errors import TicketNotFoundError, StoreError
from ticketdesk.models.message import Message, SenderRole
from ticketdesk.models.ticket import CannedResponse, InternalNote, Ticket, TicketPriority, TicketStatus
from ticketdesk.transport.http import HttpClient

TICKET_NUMBER_PREFIX = "TKT-"

T = TypeVar("T")


def _first(rows: Any) -> Optional[dict[str, Any]]:
    if isinstance(rows, list):
        return rows[0] if rows else None
    if isinstance(rows, dict):
        return rows
    return None


def _parse(build: Callable[[dict[str, Any]], T], row: Any, table: str) -> T:
    """Build a model from a store row; a row that does not fit is a StoreError."""
    try:
        return build(row)
    except (ValidationError, KeyError, TypeError) as e:
        raise StoreError(f"Malformed {table} row: {e}", details={"table": table, "row": row}) from e


class TranscriptStore:
    def __init__(self, http: HttpClient):
        self._http = http

    async def get_ticket(self, ticket_ref: str) -> Ticket:
        """Look up a ticket by its TKT- number or by id."""
        if ticket_ref.startswith(TICKET_NUMBER_PREFIX):
            rows = await self._http.rpc("get_ticket_by_number", {"p_ticket_number": ticket_ref})
        else:
            rows = await self._http.get("/support_tickets", params={"id": f"eq.{ticket_ref}", "select": "*"})
        row = _first(rows)
        if row is None:
            raise TicketNotFoundError(ticket_ref)
        return _parse(Ticket.model_validate, row, "support_tickets")

    async def list_messages(self, ticket_id: str) -> list[Message]:
        rows = await self._http.get("/ticket_messages", params={
            "ticket_id": f"eq.{ticket_id}",
            "select": "*",
            "order": "created_at.asc",
        })
        return [_parse(Message.from_row, row, "ticket_messages") for row in rows or []]

    async def insert_message(
        self, ticket_id: str, sender_role: SenderRole, body: str, sender_id: Optional[str] = None,
    ) -> Message:
        """Insert a message and return the durable row with server id and timestamp."""
        rows = await self._http.post("/ticket_messages", {
            "ticket_id": ticket_id,
            "message": body,
            "is_admin": sender_role is SenderRole.ADMIN,
            "sender_type": sender_role.value,
            "sender_id": sender_id,
        }, prefer="return=representation")
        row = _first(rows)
        if row is None:
            raise StoreError("Insert returned no row", details={"ticket_id": ticket_id})
        return _parse(Message.from_row, row, "ticket_messages")

    async def update_ticket(
        self,
        ticket_id: str,
        status: Optional[TicketStatus] = None,
        priority: Optional[TicketPriority] = None,
    ) -> None:
        body: dict[str, Any] = {"updated_at": datetime.now(timezone.utc).isoformat()}
        if status is not None:
            body["status"] = status.value
        if priority is not None:
            body["priority"] = priority.value
        await self._http.patch("/support_tickets", body, params={"id": f"eq.{ticket_id}"})

    async def get_requester_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        """Registered customer's profile (name, email, phone_number, avatar_url)."""
        rows = await self._http.get("/customer_details", params={"id": f"eq.{user_id}", "select": "*"})
        return _first(rows)

    async def list_internal_notes(self, ticket_id: str) -> list[InternalNote]:
        rows = await self._http.rpc("get_internal_notes", {"p_ticket_id": ticket_id})
        return [_parse(InternalNote.model_validate, row, "internal_notes") for row in rows or []]

    async def add_internal_note(self, ticket_id: str, note: str) -> Optional[InternalNote]:
        rows = await self._http.rpc("add_internal_note", {"p_ticket_id": ticket_id, "p_note": note})
        row = _first(rows)
        return _parse(InternalNote.model_validate, row, "internal_notes") if row else None

    async def list_canned_responses(self, category: Optional[str] = None) -> list[CannedResponse]:
        rows = await self._http.rpc("get_canned_responses", {"p_category": category})
        return [_parse(CannedResponse.model_validate, row, "canned_responses") for row in rows or []]

"""In-memory stand-ins for the store and the realtime connection."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from ticketdesk.errors import StoreError, TicketNotFoundError
from ticketdesk.feed import ChangeFeed, MESSAGES_TABLE, TICKETS_TABLE
from ticketdesk.models.envelope import RealtimeEvent
from ticketdesk.models.message import DurableId, Message, SenderRole
from ticketdesk.models.ticket import InternalNote, Ticket, TicketPriority, TicketStatus
from ticketdesk.transport.envelope import build_frame
from ticketdesk.transport.socketio import RealtimeManager

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def row(id: str, body: str, is_admin: bool = False, seconds: float = 0, ticket_id: str = "tkt-uuid-1") -> dict[str, Any]:
    """A ticket_messages row as the store returns it."""
    return {
        "id": id,
        "ticket_id": ticket_id,
        "message": body,
        "is_admin": is_admin,
        "sender_type": "admin" if is_admin else "customer",
        "sender_id": None,
        "created_at": at(seconds).isoformat(),
    }


def message(id: str, body: str, is_admin: bool = False, seconds: float = 0) -> Message:
    return Message.from_row(row(id, body, is_admin, seconds))


def make_ticket(**overrides: Any) -> Ticket:
    fields: dict[str, Any] = {
        "id": "tkt-uuid-1",
        "ticket_number": "TKT-1001",
        "subject": "Helicopter booking not confirmed",
        "status": TicketStatus.OPEN,
        "priority": TicketPriority.MEDIUM,
        "category": "booking",
        "guest_name": "Asha Rawat",
        "guest_email": "asha@example.com",
        "created_at": T0,
        "updated_at": T0,
    }
    fields.update(overrides)
    return Ticket(**fields)


class FakeRealtime(RealtimeManager):
    """Realtime manager that records outgoing frames instead of hitting a socket."""

    def __init__(self) -> None:
        super().__init__("http://realtime.test", "anon-key")
        self.sent: list[tuple[str, dict[str, Any]]] = []

    @property
    def connected(self) -> bool:
        return True

    def _emit(self, event: str, frame: dict[str, Any]) -> None:
        self.sent.append((event, frame))

    @property
    def topics(self) -> set[str]:
        return set(self._topics)

    @property
    def handler_count(self) -> int:
        return len(self._event_handlers)

    def broadcasts(self, kind: Optional[str] = None) -> list[dict[str, Any]]:
        frames = [f for e, f in self.sent if e == RealtimeEvent.BROADCAST]
        return [f["payload"]["payload"] for f in frames if kind is None or f["payload"]["event"] == kind]

    def push_insert(self, record: dict[str, Any]) -> None:
        topic = ChangeFeed.topic(MESSAGES_TABLE, "ticket_id", record["ticket_id"])
        self._dispatch(RealtimeEvent.POSTGRES_CHANGES, build_frame(topic, RealtimeEvent.POSTGRES_CHANGES, {
            "type": "INSERT", "table": MESSAGES_TABLE, "record": record,
        }))

    def push_ticket_update(self, ticket: Ticket) -> None:
        topic = ChangeFeed.topic(TICKETS_TABLE, "id", ticket.id)
        self._dispatch(RealtimeEvent.POSTGRES_CHANGES, build_frame(topic, RealtimeEvent.POSTGRES_CHANGES, {
            "type": "UPDATE", "table": TICKETS_TABLE, "record": ticket.model_dump(mode="json"),
        }))

    def push_signal(self, ticket_id: str, kind: str, payload: dict[str, Any]) -> None:
        topic = f"ticket:{ticket_id}"
        self._dispatch(RealtimeEvent.BROADCAST, build_frame(topic, RealtimeEvent.BROADCAST, {
            "event": kind, "payload": payload,
        }))


class FakeStore:
    """Transcript store backed by lists; failures and latency are switchable."""

    def __init__(self, ticket: Optional[Ticket] = None):
        ticket = ticket or make_ticket()
        self.tickets: dict[str, Ticket] = {ticket.id: ticket}
        self.messages: list[Message] = []
        self.notes: list[InternalNote] = []
        self.profiles: dict[str, dict[str, Any]] = {}
        self.fail_inserts = False
        self.fail_updates = False
        self.fail_reads = False
        self.insert_gate: Optional[asyncio.Event] = None
        self.update_gate: Optional[asyncio.Event] = None
        self._seq = 0

    async def get_ticket(self, ticket_ref: str) -> Ticket:
        if self.fail_reads:
            raise StoreError("HTTP 503: unavailable")
        for t in self.tickets.values():
            if ticket_ref in (t.id, t.ticket_number):
                return t
        raise TicketNotFoundError(ticket_ref)

    async def list_messages(self, ticket_id: str) -> list[Message]:
        if self.fail_reads:
            raise StoreError("HTTP 503: unavailable")
        return [m for m in self.messages if m.ticket_id == ticket_id]

    async def insert_message(
        self, ticket_id: str, sender_role: SenderRole, body: str, sender_id: Optional[str] = None,
    ) -> Message:
        if self.insert_gate is not None:
            await self.insert_gate.wait()
        if self.fail_inserts:
            raise StoreError("HTTP 500: insert rejected")
        self._seq += 1
        stored = Message(
            id=DurableId(value=f"srv-{self._seq}"),
            ticket_id=ticket_id,
            body=body,
            sender_role=sender_role,
            sender_id=sender_id,
            created_at=datetime.now(timezone.utc),
        )
        self.messages.append(stored)
        return stored

    async def update_ticket(
        self, ticket_id: str, status: Optional[TicketStatus] = None, priority: Optional[TicketPriority] = None,
    ) -> None:
        if self.update_gate is not None:
            await self.update_gate.wait()
        if self.fail_updates:
            raise StoreError("HTTP 500: update rejected")
        update: dict[str, Any] = {"updated_at": datetime.now(timezone.utc)}
        if status is not None:
            update["status"] = status
        if priority is not None:
            update["priority"] = priority
        self.tickets[ticket_id] = self.tickets[ticket_id].model_copy(update=update)

    async def get_requester_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        return self.profiles.get(user_id)

    async def list_internal_notes(self, ticket_id: str) -> list[InternalNote]:
        return [n for n in self.notes if n.ticket_id == ticket_id]

    async def add_internal_note(self, ticket_id: str, note: str) -> InternalNote:
        if self.fail_updates:
            raise StoreError("HTTP 500: note rejected")
        created = InternalNote(id=f"note-{len(self.notes) + 1}", ticket_id=ticket_id, note=note, admin_name="Ops")
        self.notes.append(created)
        return created

    async def list_canned_responses(self, category: Optional[str] = None) -> list:
        return []

"""
Ticket models — support_tickets rows and their admin-side companions.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    WAITING_CUSTOMER = "waiting_customer"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
    CRITICAL = "critical"


class RegisteredRequester(BaseModel):
    user_id: str


class GuestRequester(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


Requester = Union[RegisteredRequester, GuestRequester]

GUEST_DISPLAY_NAME = "Guest User"


class Ticket(BaseModel):
    model_config = {"frozen": True}

    id: str
    ticket_number: Optional[str] = None
    subject: str
    description: Optional[str] = None
    status: TicketStatus = TicketStatus.OPEN
    priority: TicketPriority = TicketPriority.MEDIUM
    category: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user_id: Optional[str] = None
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None

    @property
    def reference(self) -> str:
        """Human-facing ticket number, or a short id for legacy rows."""
        return self.ticket_number or f"#{self.id[:8]}"

    @property
    def requester(self) -> Requester:
        if self.user_id:
            return RegisteredRequester(user_id=self.user_id)
        return GuestRequester(name=self.guest_name, email=self.guest_email, phone=self.guest_phone)

    def display_name(self, profile: Optional[dict[str, Any]] = None) -> str:
        if profile and profile.get("name"):
            return profile["name"]
        return self.guest_name or GUEST_DISPLAY_NAME


class InternalNote(BaseModel):
    """Admin-only note; never part of the customer transcript."""

    id: str
    ticket_id: Optional[str] = None
    note: str
    admin_name: Optional[str] = None
    created_at: Optional[datetime] = None


class CannedResponse(BaseModel):
    id: str
    title: str = ""
    content: str
    category: Optional[str] = None

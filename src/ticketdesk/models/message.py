"""
Transcript message models.

A message id is either durable (assigned by the store) or provisional
(assigned locally at send time and replaced once the store acknowledges).
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class SenderRole(str, Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"

    @classmethod
    def from_flag(cls, is_admin: Any) -> "SenderRole":
        return cls.ADMIN if is_admin else cls.CUSTOMER

    @property
    def other(self) -> "SenderRole":
        return SenderRole.CUSTOMER if self is SenderRole.ADMIN else SenderRole.ADMIN


class DurableId(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["durable"] = "durable"
    value: str


class ProvisionalId(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["provisional"] = "provisional"
    value: str = Field(default_factory=lambda: uuid.uuid4().hex)


MessageId = Union[DurableId, ProvisionalId]


class Message(BaseModel):
    model_config = {"frozen": True}

    id: MessageId = Field(discriminator="kind")
    ticket_id: str
    body: str
    sender_role: SenderRole
    sender_id: Optional[str] = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Rows from timestamp-without-zone columns arrive naive.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def pending(self) -> bool:
        return isinstance(self.id, ProvisionalId)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Message":
        """Build a durable message from a ticket_messages row.

        A row without created_at fails validation; there is no stable
        position to give it.
        """
        if "is_admin" in row and row["is_admin"] is not None:
            role = SenderRole.from_flag(row["is_admin"])
        else:
            role = SenderRole.ADMIN if row.get("sender_type") == "admin" else SenderRole.CUSTOMER
        return cls(
            id=DurableId(value=str(row["id"])),
            ticket_id=str(row["ticket_id"]),
            body=row.get("message") or "",
            sender_role=role,
            sender_id=row.get("sender_id"),
            created_at=row.get("created_at"),
        )

    @classmethod
    def provisional(
        cls,
        ticket_id: str,
        body: str,
        sender_role: SenderRole,
        sender_id: Optional[str] = None,
        local_id: Optional[ProvisionalId] = None,
    ) -> "Message":
        """Synthesize a local message stamped with the client clock."""
        return cls(
            id=local_id or ProvisionalId(),
            ticket_id=ticket_id,
            body=body,
            sender_role=sender_role,
            sender_id=sender_id,
            created_at=datetime.now(timezone.utc),
        )

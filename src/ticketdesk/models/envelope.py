"""
Realtime frames and broadcast payloads.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from pydantic import BaseModel, field_validator


class RealtimeEvent:
    """Socket.IO event names used on the realtime connection."""

    READY = "ready"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    BROADCAST = "broadcast"
    POSTGRES_CHANGES = "postgres_changes"


class SignalKind:
    """Broadcast event kinds carried on a ticket's signal channel."""

    TYPING = "typing"
    READ = "read"
    MESSAGE_SENT = "message_sent"


class RealtimeFrame(BaseModel):
    topic: str
    event: str
    payload: dict[str, Any] = {}
    ref: Optional[str] = None
    sent_at: Optional[str] = None


class RowChange(BaseModel):
    """postgres_changes payload: one changed row."""

    type: str  # "INSERT" | "UPDATE"
    table: str
    record: dict[str, Any] = {}
    old_record: Optional[dict[str, Any]] = None


class TypingPayload(BaseModel):
    is_admin: bool


class ReadPayload(BaseModel):
    is_admin: bool
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class MessageSentPayload(BaseModel):
    is_admin: Optional[bool] = None

"""
Realtime frame construction and parsing.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from ticketdesk.models.envelope import RealtimeFrame, RowChange


def build_frame(topic: str, event: str, payload: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Build an outgoing frame as a dict ready for Socket.IO emit."""
    frame = RealtimeFrame(
        topic=topic,
        event=event,
        payload=payload or {},
        ref=str(uuid.uuid4()),
        sent_at=datetime.now(timezone.utc).isoformat(),
    )
    return frame.model_dump()


def parse_frame(raw: Any) -> Optional[RealtimeFrame]:
    """Parse an incoming frame. Returns None if invalid."""
    if not isinstance(raw, dict):
        return None
    try:
        return RealtimeFrame.model_validate(raw)
    except ValidationError:
        return None


def parse_row_change(frame: RealtimeFrame) -> Optional[RowChange]:
    try:
        return RowChange.model_validate(frame.payload)
    except ValidationError:
        return None

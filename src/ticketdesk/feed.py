"""
Change feed — row insert/update notifications scoped to one ticket.

Delivery is best effort: events may be dropped on reconnect or under load.
The poller is what makes the transcript eventually correct.
"""

import logging
from typing import Callable

from pydantic import ValidationError

from ticketdesk.models.envelope import RealtimeEvent, RealtimeFrame
from ticketdesk.models.message import Message
from ticketdesk.models.ticket import Ticket
from ticketdesk.transport.envelope import parse_row_change
from ticketdesk.transport.socketio import RealtimeManager

MESSAGES_TABLE = "ticket_messages"
TICKETS_TABLE = "support_tickets"

logger = logging.getLogger("ticketdesk.feed")


class Subscription:
    """Handle for one change-feed subscription. unsubscribe() is idempotent."""

    def __init__(self, topic: str, release: Callable[[], None]):
        self.topic = topic
        self._release = release
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._release()

    def __repr__(self) -> str:
        return f"Subscription(topic={self.topic!r}, active={self.active!r})"


class ChangeFeed:
    def __init__(self, realtime: RealtimeManager):
        self._realtime = realtime

    @staticmethod
    def topic(table: str, column: str, value: str) -> str:
        return f"{RealtimeEvent.POSTGRES_CHANGES}:{table}:{column}=eq.{value}"

    def on_message_insert(self, ticket_id: str, callback: Callable[[Message], None]) -> Subscription:
        """Deliver every new message row of a ticket."""
        def handle(record: dict) -> None:
            callback(Message.from_row(record))
        return self._subscribe(self.topic(MESSAGES_TABLE, "ticket_id", ticket_id), "INSERT", handle)

    def on_ticket_update(self, ticket_id: str, callback: Callable[[Ticket], None]) -> Subscription:
        """Deliver the full ticket row after every update."""
        def handle(record: dict) -> None:
            callback(Ticket.model_validate(record))
        return self._subscribe(self.topic(TICKETS_TABLE, "id", ticket_id), "UPDATE", handle)

    def _subscribe(self, topic: str, change_type: str, handle: Callable[[dict], None]) -> Subscription:
        def on_frame(event: str, frame: RealtimeFrame) -> None:
            if event != RealtimeEvent.POSTGRES_CHANGES or frame.topic != topic:
                return
            change = parse_row_change(frame)
            if change is None or change.type != change_type:
                return
            try:
                handle(change.record)
            except (KeyError, ValidationError) as e:
                logger.warning("Ignoring malformed %s row on %s: %s", change_type, topic, e)

        remove = self._realtime.add_event_handler(on_frame)
        leave = self._realtime.join(topic)

        def release() -> None:
            remove()
            leave()
        return Subscription(topic, release)

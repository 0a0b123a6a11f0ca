"""
Ephemeral signals on a ticket's broadcast channel — typing, read, message_sent.

Nothing here is persisted. Typing expires on a local timer (refreshed by
each new typing event), read markers live only for the view session, and
outgoing typing/read signals are rate limited.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, ValidationError

from ticketdesk.models.envelope import (
    MessageSentPayload, ReadPayload, RealtimeEvent, RealtimeFrame, SignalKind, TypingPayload,
)
from ticketdesk.models.message import Message, SenderRole
from ticketdesk.transport.socketio import RealtimeManager

DEFAULT_TYPING_TIMEOUT_S = 2.0
DEFAULT_TYPING_THROTTLE_S = 1.5
DEFAULT_READ_RECEIPT_INTERVAL_S = 1.0
DEFAULT_READ_RECEIPT_DELAY_S = 0.5

logger = logging.getLogger("ticketdesk.signals")


class TypingIndicator:
    """'Other party is typing' flag that clears itself after `timeout` seconds of silence."""

    def __init__(self, timeout: float = DEFAULT_TYPING_TIMEOUT_S, on_change: Optional[Callable[[], None]] = None):
        self.timeout = timeout
        self._on_change = on_change
        self._active = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self._closed = False

    @property
    def active(self) -> bool:
        return self._active

    def refresh(self) -> None:
        """Set the flag and restart the countdown."""
        if self._closed:
            return
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().call_later(self.timeout, self._expire)
        self._set(True)

    def clear(self) -> None:
        self._cancel_timer()
        self._set(False)

    def close(self) -> None:
        self._closed = True
        self._cancel_timer()

    def _expire(self) -> None:
        self._timer = None
        self._set(False)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set(self, active: bool) -> None:
        if self._active == active:
            return
        self._active = active
        if self._on_change and not self._closed:
            self._on_change()


class Throttle:
    """Allow at most one action per `interval` seconds."""

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self._clock = clock
        self._last: Optional[float] = None

    def ready(self) -> bool:
        now = self._clock()
        if self._last is not None and now - self._last < self.interval:
            return False
        self._last = now
        return True


class ReadMarkers:
    """Latest timestamp up to which each party has seen the transcript."""

    def __init__(self) -> None:
        self._markers: dict[SenderRole, datetime] = {}

    def get(self, role: SenderRole) -> Optional[datetime]:
        return self._markers.get(role)

    def record(self, role: SenderRole, timestamp: datetime) -> bool:
        """Record a marker. Markers never move backwards; returns True if it advanced."""
        current = self._markers.get(role)
        if current is not None and timestamp <= current:
            return False
        self._markers[role] = timestamp
        return True


def is_seen(message: Message, messages: Iterable[Message], markers: ReadMarkers) -> bool:
    """Whether the other party has seen `message`.

    Seen means the other party replied after it, or their read marker has
    reached its timestamp. Pending messages are never seen.
    """
    if message.pending:
        return False
    other = message.sender_role.other
    marker = markers.get(other)
    if marker is not None and marker >= message.created_at:
        return True
    return any(
        m.sender_role is other and not m.pending and m.created_at > message.created_at
        for m in messages
    )


class SignalState:
    """Interprets incoming signals relative to the viewer's role."""

    def __init__(
        self,
        viewer: SenderRole,
        typing_timeout: float = DEFAULT_TYPING_TIMEOUT_S,
        on_change: Optional[Callable[[str], None]] = None,
    ):
        self.viewer = viewer
        self._on_change = on_change
        self.typing = TypingIndicator(typing_timeout, on_change=lambda: self._notify(SignalKind.TYPING))
        self.read_markers = ReadMarkers()

    @property
    def other_typing(self) -> bool:
        return self.typing.active

    def handle(self, kind: str, payload: dict[str, Any]) -> None:
        try:
            if kind == SignalKind.TYPING:
                typing = TypingPayload.model_validate(payload)
                if SenderRole.from_flag(typing.is_admin) is not self.viewer:
                    self.typing.refresh()
            elif kind == SignalKind.READ:
                read = ReadPayload.model_validate(payload)
                sender = SenderRole.from_flag(read.is_admin)
                if sender is not self.viewer and self.read_markers.record(sender, read.timestamp):
                    self._notify(SignalKind.READ)
            elif kind == SignalKind.MESSAGE_SENT:
                sent = MessageSentPayload.model_validate(payload)
                if sent.is_admin is not None and SenderRole.from_flag(sent.is_admin) is self.viewer:
                    return
                self.typing.clear()
            else:
                logger.debug("Ignoring unknown signal %r", kind)
        except ValidationError as e:
            logger.debug("Dropping malformed %s signal: %s", kind, e)

    def is_seen(self, message: Message, messages: Iterable[Message]) -> bool:
        return is_seen(message, messages, self.read_markers)

    def close(self) -> None:
        self.typing.close()
        self._on_change = None

    def _notify(self, kind: str) -> None:
        if self._on_change:
            self._on_change(kind)


class ReadReceiptEmitter:
    """Emits 'read' only while the view is both visible and focused.

    Emits on becoming visible, on gaining focus, and once shortly after
    start() if already visible and focused. Emissions are throttled.
    """

    def __init__(
        self,
        emit: Callable[[], None],
        interval: float = DEFAULT_READ_RECEIPT_INTERVAL_S,
        initial_delay: float = DEFAULT_READ_RECEIPT_DELAY_S,
        visible: bool = True,
        focused: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._emit = emit
        self._throttle = Throttle(interval, clock)
        self.initial_delay = initial_delay
        self.visible = visible
        self.focused = focused
        self._timer: Optional[asyncio.TimerHandle] = None
        self._closed = False

    def start(self) -> None:
        if self._closed:
            return
        self._timer = asyncio.get_running_loop().call_later(self.initial_delay, self._initial)

    def set_visible(self, visible: bool) -> None:
        became = visible and not self.visible
        self.visible = visible
        if became:
            self.maybe_emit()

    def set_focused(self, focused: bool) -> None:
        gained = focused and not self.focused
        self.focused = focused
        if gained:
            self.maybe_emit()

    def maybe_emit(self) -> bool:
        if self._closed or not (self.visible and self.focused):
            return False
        if not self._throttle.ready():
            return False
        self._emit()
        return True

    def close(self) -> None:
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _initial(self) -> None:
        self._timer = None
        self.maybe_emit()


class SignalChannel:
    """A ticket's broadcast topic on the realtime connection."""

    def __init__(self, realtime: RealtimeManager, ticket_id: str):
        self._realtime = realtime
        self.topic = f"ticket:{ticket_id}"

    def subscribe(self, handler: Callable[[str, dict[str, Any]], None]) -> Callable[[], None]:
        """Receive (kind, payload) for every broadcast. Returns an idempotent unsubscribe."""
        def on_frame(event: str, frame: RealtimeFrame) -> None:
            if event != RealtimeEvent.BROADCAST or frame.topic != self.topic:
                return
            kind = frame.payload.get("event")
            payload = frame.payload.get("payload")
            if isinstance(kind, str):
                handler(kind, payload if isinstance(payload, dict) else {})

        remove = self._realtime.add_event_handler(on_frame)
        leave = self._realtime.join(self.topic)
        done = False

        def unsubscribe() -> None:
            nonlocal done
            if done:
                return
            done = True
            remove()
            leave()
        return unsubscribe

    def send(self, kind: str, payload: BaseModel) -> None:
        self._realtime.broadcast(self.topic, kind, payload.model_dump(mode="json"))

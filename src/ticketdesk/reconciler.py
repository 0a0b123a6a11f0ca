"""
Transcript reconciler — one ordered, de-duplicated message list per open
ticket, fed by three overlapping sources:

- RemoteInsert: a durable row from the change feed (or a poll).
- OptimisticSend / ReconcileResult: the viewer's own send, first as a
  provisional entry, then swapped for its durable row or dropped on failure.
- PollerSnapshot: a full re-fetch used to heal missed change-feed events.

All merge logic lives in reduce(), a pure function of (state, event).
Reconciler wraps it with state ownership and change notification.

Ordering: created_at ascending, ties kept in arrival order. A provisional
entry carries the client clock, which can disagree slightly with the
server's timestamp; a reconciled entry keeps its position until the next
re-sort, and the next snapshot restores canonical order.

A durable row of our own that arrives before the ack (change feed or poll)
takes over the oldest pending entry with the same sender and body, so the
transcript never shows a send twice.
"""

from typing import Callable, Iterable, Optional, Union

from pydantic import BaseModel

from ticketdesk.models.message import DurableId, Message, ProvisionalId, SenderRole


class TranscriptState(BaseModel):
    model_config = {"frozen": True}

    messages: tuple[Message, ...] = ()

    @property
    def pending_send_count(self) -> int:
        return sum(1 for m in self.messages if m.pending)

    def durable_ids(self) -> set[str]:
        return {m.id.value for m in self.messages if isinstance(m.id, DurableId)}

    def find(self, message_id: Union[DurableId, ProvisionalId]) -> Optional[int]:
        for i, m in enumerate(self.messages):
            if m.id == message_id:
                return i
        return None


class RemoteInsert(BaseModel):
    model_config = {"frozen": True}
    message: Message


class OptimisticSend(BaseModel):
    model_config = {"frozen": True}
    message: Message


class ReconcileResult(BaseModel):
    """Outcome of a send: the durable row, or None when the store rejected it."""

    model_config = {"frozen": True}
    provisional_id: ProvisionalId
    durable: Optional[Message] = None


class PollerSnapshot(BaseModel):
    model_config = {"frozen": True}
    messages: tuple[Message, ...]


TranscriptEvent = Union[RemoteInsert, OptimisticSend, ReconcileResult, PollerSnapshot]


def canonical_order(messages: Iterable[Message]) -> tuple[Message, ...]:
    # sorted() is stable, so equal timestamps keep arrival order.
    return tuple(sorted(messages, key=lambda m: m.created_at))


def _confirms(durable: Message, entry: Message) -> bool:
    return (
        entry.pending
        and entry.sender_role is durable.sender_role
        and entry.sender_id == durable.sender_id
        and entry.body == durable.body
    )


def _first_confirmed(messages: Iterable[Message], durable: Message) -> Optional[int]:
    """Index of the oldest pending entry that a newly arrived durable row stands for."""
    for i, m in enumerate(messages):
        if _confirms(durable, m):
            return i
    return None


def _insert(state: TranscriptState, message: Message) -> TranscriptState:
    if state.find(message.id) is not None:
        return state
    if not message.pending:
        # Our own row echoed back before the ack: it takes the pending entry's place.
        index = _first_confirmed(state.messages, message)
        if index is not None:
            messages = list(state.messages)
            messages[index] = message
            return TranscriptState(messages=tuple(messages))
    return TranscriptState(messages=canonical_order((*state.messages, message)))


def _reconcile(state: TranscriptState, event: ReconcileResult) -> TranscriptState:
    index = state.find(event.provisional_id)
    durable = event.durable
    if index is None:
        # Provisional entry already gone (rejected, or taken over by its echoed row);
        # a late success is just another insert.
        return _insert(state, durable) if durable is not None else state
    messages = list(state.messages)
    if durable is None or state.find(durable.id) is not None:
        # Rejected, or the change feed already delivered the durable row.
        del messages[index]
    else:
        messages[index] = durable
    return TranscriptState(messages=tuple(messages))


def _merge_snapshot(state: TranscriptState, snapshot: Iterable[Message]) -> TranscriptState:
    by_id: dict[str, Message] = {}
    for m in state.messages:
        if isinstance(m.id, DurableId):
            by_id[m.id.value] = m
    pending = [m for m in state.messages if m.pending]
    for m in snapshot:
        if not isinstance(m.id, DurableId):
            continue
        if m.id.value not in by_id:
            index = _first_confirmed(pending, m)
            if index is not None:
                del pending[index]
        by_id[m.id.value] = m
    merged = canonical_order((*by_id.values(), *pending))
    if merged == state.messages:
        return state
    return TranscriptState(messages=merged)


def reduce(state: TranscriptState, event: TranscriptEvent) -> TranscriptState:
    """Return the next transcript state. Returns `state` itself when nothing changed."""
    if isinstance(event, RemoteInsert):
        return _insert(state, event.message)
    if isinstance(event, OptimisticSend):
        return _insert(state, event.message)
    if isinstance(event, ReconcileResult):
        return _reconcile(state, event)
    if isinstance(event, PollerSnapshot):
        return _merge_snapshot(state, event.messages)
    raise TypeError(f"Unknown transcript event: {event!r}")


TranscriptListener = Callable[[TranscriptState, bool], None]


class Reconciler:
    """Owns the transcript of one open ticket.

    Listeners receive (new_state, own_action) after every change; own_action
    is true when the change came from the viewer's own send.
    """

    def __init__(self, ticket_id: str, viewer: SenderRole, viewer_id: Optional[str] = None):
        self.ticket_id = ticket_id
        self.viewer = viewer
        self.viewer_id = viewer_id
        self._state = TranscriptState()
        self._listeners: list[TranscriptListener] = []

    @property
    def state(self) -> TranscriptState:
        return self._state

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._state.messages

    def add_listener(self, listener: TranscriptListener) -> Callable[[], None]:
        self._listeners.append(listener)
        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    def dispatch(self, event: TranscriptEvent, own_action: bool = False) -> bool:
        """Apply an event. Returns True if the transcript changed."""
        new_state = reduce(self._state, event)
        if new_state is self._state:
            return False
        self._state = new_state
        for listener in list(self._listeners):
            listener(new_state, own_action)
        return True

    def apply_remote_insert(self, message: Message) -> bool:
        return self.dispatch(RemoteInsert(message=message), own_action=message.sender_role is self.viewer)

    def apply_optimistic_send(self, body: str, local_id: Optional[ProvisionalId] = None) -> Message:
        message = Message.provisional(
            self.ticket_id, body, self.viewer, sender_id=self.viewer_id, local_id=local_id,
        )
        self.dispatch(OptimisticSend(message=message), own_action=True)
        return message

    def reconcile_optimistic(self, provisional_id: ProvisionalId, durable: Optional[Message]) -> bool:
        """Swap a provisional entry for its durable row, or drop it when durable is None."""
        return self.dispatch(ReconcileResult(provisional_id=provisional_id, durable=durable), own_action=True)

    def apply_poller_snapshot(self, messages: Iterable[Message]) -> bool:
        return self.dispatch(PollerSnapshot(messages=tuple(messages)))

"""
TicketView — one open ticket conversation.

Merges the change feed, the signal channel, the poller and the viewer's
own sends into a single transcript, with typing/read indicators and
auto-scroll. Every subscription and timer acquired by open() is released
by close(); nothing outlives the view.

Mutations (send, status, priority) are optimistic: the local state changes
first and is reverted if the store rejects the write. Failures never raise
out of these operations; they are logged and appended to `notices`.
"""

import logging
from contextlib import ExitStack
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from ticketdesk.errors import (
    FetchError, MutationError, SendError, StoreError, TicketClosedError, TicketDeskError, TicketNotFoundError,
)
from ticketdesk.feed import ChangeFeed
from ticketdesk.models.envelope import MessageSentPayload, ReadPayload, SignalKind, TypingPayload
from ticketdesk.models.message import Message, SenderRole
from ticketdesk.models.ticket import CannedResponse, InternalNote, Ticket, TicketPriority, TicketStatus
from ticketdesk.poller import DEFAULT_POLL_INTERVAL_S, Poller
from ticketdesk.reconciler import Reconciler, TranscriptState
from ticketdesk.scroll import ScrollController, Viewport
from ticketdesk.signals import (
    DEFAULT_READ_RECEIPT_DELAY_S, DEFAULT_READ_RECEIPT_INTERVAL_S, DEFAULT_TYPING_THROTTLE_S,
    DEFAULT_TYPING_TIMEOUT_S, ReadReceiptEmitter, SignalChannel, SignalState, Throttle,
)
from ticketdesk.status import REOPEN_STATUS, can_reply, optimistic_update, status_after_reply
from ticketdesk.store import TranscriptStore
from ticketdesk.transport.socketio import RealtimeManager

logger = logging.getLogger("ticketdesk.view")


class Notice:
    """A user-visible message about a failed (or notable) operation."""

    __slots__ = ("level", "message", "code")

    def __init__(self, level: str, message: str, code: Optional[str] = None):
        self.level = level
        self.message = message
        self.code = code

    def __repr__(self) -> str:
        return f"Notice(level={self.level!r}, message={self.message!r})"


class TicketView:
    def __init__(
        self,
        store: TranscriptStore,
        realtime: RealtimeManager,
        ticket_ref: str,
        *,
        viewer: SenderRole = SenderRole.ADMIN,
        viewer_id: Optional[str] = None,
        viewport: Optional[Viewport] = None,
        render: Optional[Callable[["TicketView"], None]] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL_S,
        typing_timeout: float = DEFAULT_TYPING_TIMEOUT_S,
        typing_throttle: float = DEFAULT_TYPING_THROTTLE_S,
        read_receipt_interval: float = DEFAULT_READ_RECEIPT_INTERVAL_S,
        read_receipt_delay: float = DEFAULT_READ_RECEIPT_DELAY_S,
        visible: bool = True,
        focused: bool = True,
    ):
        self._store = store
        self._realtime = realtime
        self.ticket_ref = ticket_ref
        self.viewer = viewer
        self.viewer_id = viewer_id

        self.ticket: Optional[Ticket] = None
        self.requester_profile: Optional[dict[str, Any]] = None
        self.internal_notes: list[InternalNote] = []
        self.canned_responses: list[CannedResponse] = []
        self.notices: list[Notice] = []
        self.draft = ""

        self.scroll = ScrollController(viewport)
        self.signals = SignalState(viewer, typing_timeout, on_change=self._notify)
        self._render = render
        self._reconciler: Optional[Reconciler] = None
        self._channel: Optional[SignalChannel] = None
        self._typing_throttle = Throttle(typing_throttle)
        self._read_receipts = ReadReceiptEmitter(
            self._emit_read,
            interval=read_receipt_interval,
            initial_delay=read_receipt_delay,
            visible=visible,
            focused=focused,
        )
        self._poller = Poller(self.refresh, poll_interval)
        self._listeners: list[Callable[[str], None]] = []
        self._pending_fields: set[str] = set()
        self._stack = ExitStack()
        self._opened = False
        self._closed = False

    # -- lifecycle --------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    async def open(self) -> "TicketView":
        """Load the ticket and transcript, then start all live sources.

        Raises TicketNotFoundError if the ticket does not exist and
        FetchError if the initial load fails for any other reason.
        """
        if self._opened:
            return self
        if self._closed:
            raise TicketDeskError("view_closed", "Cannot reopen a closed view; create a new one")
        try:
            ticket = await self._store.get_ticket(self.ticket_ref)
            messages = await self._store.list_messages(ticket.id)
        except TicketNotFoundError:
            logger.info("Ticket %s not found", self.ticket_ref)
            raise
        except StoreError as e:
            raise FetchError(f"Failed to load ticket {self.ticket_ref}: {e}", details={"ticket_ref": self.ticket_ref}) from e

        self.ticket = ticket
        self._reconciler = Reconciler(ticket.id, self.viewer, self.viewer_id)
        self._reconciler.apply_poller_snapshot(messages)
        await self._load_admin_context(ticket)

        self._stack.callback(self._reconciler.add_listener(self._on_transcript_change))

        feed = ChangeFeed(self._realtime)
        self._stack.callback(feed.on_message_insert(ticket.id, self._on_remote_message).unsubscribe)
        self._stack.callback(feed.on_ticket_update(ticket.id, self._merge_ticket).unsubscribe)

        self._channel = SignalChannel(self._realtime, ticket.id)
        self._stack.callback(self._channel.subscribe(self._on_signal))
        self._stack.callback(self.signals.close)

        self._poller.start()
        self._stack.callback(self._poller.stop)
        self._read_receipts.start()
        self._stack.callback(self._read_receipts.close)

        self._opened = True
        self.scroll.run(self._do_render, own_action=True)
        logger.debug("Opened ticket %s with %d messages", ticket.reference, len(messages))
        return self

    async def _load_admin_context(self, ticket: Ticket) -> None:
        if self.viewer is not SenderRole.ADMIN:
            return
        try:
            self.internal_notes = await self._store.list_internal_notes(ticket.id)
            if ticket.user_id:
                self.requester_profile = await self._store.get_requester_profile(ticket.user_id)
        except StoreError as e:
            logger.warning("Failed to load admin context for %s: %s", ticket.reference, e)

    def close(self) -> None:
        """Release every subscription and timer. Later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        self._stack.close()
        self._listeners.clear()
        logger.debug("Closed ticket view %s", self.ticket_ref)

    async def __aenter__(self) -> "TicketView":
        return await self.open()

    async def __aexit__(self, *exc: Any) -> None:
        self.close()

    # -- read side --------------------------------------------------------

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._reconciler.messages if self._reconciler else ()

    @property
    def transcript(self) -> TranscriptState:
        return self._reconciler.state if self._reconciler else TranscriptState()

    @property
    def other_typing(self) -> bool:
        return self.signals.other_typing

    @property
    def can_reply(self) -> bool:
        return self.ticket is not None and can_reply(self.ticket.status)

    @property
    def requester_name(self) -> str:
        return self.ticket.display_name(self.requester_profile) if self.ticket else ""

    def is_seen(self, message: Message) -> bool:
        return self.signals.is_seen(message, self.messages)

    def add_listener(self, listener: Callable[[str], None]) -> Callable[[], None]:
        """Called with a change kind: transcript, ticket, typing, read, notes, notice."""
        self._listeners.append(listener)
        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    # -- live sources -----------------------------------------------------

    async def refresh(self) -> None:
        """Re-fetch transcript and ticket; runs on every poll."""
        if not self.is_open:
            return
        ticket_id = self.ticket.id  # type: ignore[union-attr]
        messages = await self._store.list_messages(ticket_id)
        ticket = await self._store.get_ticket(ticket_id)
        if not self.is_open:
            return
        self._reconciler.apply_poller_snapshot(messages)  # type: ignore[union-attr]
        self._merge_ticket(ticket)

    def _on_remote_message(self, message: Message) -> None:
        if self._closed or self._reconciler is None:
            return
        self._reconciler.apply_remote_insert(message)

    def _on_transcript_change(self, _state: TranscriptState, own_action: bool) -> None:
        if self._closed:
            return
        self.scroll.run(self._do_render, own_action=own_action)
        self._notify("transcript")

    def _merge_ticket(self, incoming: Ticket) -> None:
        """Adopt a fresher ticket row, keeping fields with a write still in flight."""
        if self._closed or self.ticket is None:
            return
        keep = {field: getattr(self.ticket, field) for field in self._pending_fields}
        merged = incoming.model_copy(update=keep) if keep else incoming
        self._set_ticket(merged)

    def _on_signal(self, kind: str, payload: dict[str, Any]) -> None:
        if self._closed:
            return
        self.signals.handle(kind, payload)

    # -- viewer actions ---------------------------------------------------

    async def send_reply(self, body: Optional[str] = None) -> Optional[Message]:
        """Send `body` (or the current draft). Returns the durable message, or None on failure.

        The message shows up immediately as pending. On failure it is
        removed, the text stays in `draft`, and a notice is recorded.
        """
        self._ensure_open()
        text = self.draft if body is None else body
        if not text.strip():
            return None
        ticket = self.ticket
        if not can_reply(ticket.status):  # type: ignore[union-attr]
            raise TicketClosedError(ticket.reference)  # type: ignore[union-attr]
        self.draft = text

        provisional = self._reconciler.apply_optimistic_send(text)  # type: ignore[union-attr]
        try:
            durable = await self._store.insert_message(ticket.id, self.viewer, text, self.viewer_id)  # type: ignore[union-attr]
        except Exception as e:
            if self._closed:
                return None
            self._reconciler.reconcile_optimistic(provisional.id, None)  # type: ignore[union-attr]
            self._fail(SendError("Failed to send message"), e)
            return None
        if self._closed:
            return durable

        self._reconciler.reconcile_optimistic(provisional.id, durable)  # type: ignore[union-attr]
        if self.draft == text:
            self.draft = ""
        self._channel.send(SignalKind.MESSAGE_SENT, MessageSentPayload(is_admin=self._is_admin))  # type: ignore[union-attr]

        next_status = status_after_reply(self.ticket.status, self.viewer)  # type: ignore[union-attr]
        if next_status is not self.ticket.status:  # type: ignore[union-attr]
            await self.set_status(next_status)
        return durable

    async def set_status(self, status: TicketStatus) -> bool:
        ticket_id = self._ensure_open().id
        return await self._mutate("status", status, lambda: self._store.update_ticket(ticket_id, status=status))

    async def set_priority(self, priority: TicketPriority) -> bool:
        ticket_id = self._ensure_open().id
        return await self._mutate("priority", priority, lambda: self._store.update_ticket(ticket_id, priority=priority))

    async def reopen(self) -> bool:
        return await self.set_status(REOPEN_STATUS)

    async def _mutate(self, field: str, value: Any, write: Callable[[], Awaitable[Any]]) -> bool:
        previous = getattr(self.ticket, field)
        if previous == value:
            return True

        def apply() -> None:
            self._set_ticket(self.ticket.model_copy(update={field: value}))  # type: ignore[union-attr]

        def revert() -> None:
            # Only undo our own value; a newer one from the feed wins.
            if getattr(self.ticket, field) == value:
                self._set_ticket(self.ticket.model_copy(update={field: previous}))  # type: ignore[union-attr]

        self._pending_fields.add(field)
        try:
            await optimistic_update(apply, revert, write)
        except Exception as e:
            if not self._closed:
                self._fail(MutationError(f"Failed to update {field}"), e)
            return False
        finally:
            self._pending_fields.discard(field)
        return True

    def notify_typing(self) -> bool:
        """Call on each keystroke; broadcasts at most once per throttle window."""
        if not self.is_open or not self._typing_throttle.ready():
            return False
        self._channel.send(SignalKind.TYPING, TypingPayload(is_admin=self._is_admin))  # type: ignore[union-attr]
        return True

    def set_visible(self, visible: bool) -> None:
        self._read_receipts.set_visible(visible)

    def set_focused(self, focused: bool) -> None:
        self._read_receipts.set_focused(focused)

    def request_scroll(self) -> None:
        self.scroll.request_scroll()

    async def add_internal_note(self, note: str) -> Optional[InternalNote]:
        ticket_id = self._ensure_open().id
        if not note.strip():
            return None
        try:
            created = await self._store.add_internal_note(ticket_id, note)
            if created is None:
                self.internal_notes = await self._store.list_internal_notes(ticket_id)
            else:
                self.internal_notes.append(created)
        except Exception as e:
            self._fail(MutationError("Failed to add note"), e)
            return None
        self._notify("notes")
        return created

    async def load_canned_responses(self, category: Optional[str] = None) -> list[CannedResponse]:
        try:
            self.canned_responses = await self._store.list_canned_responses(category)
        except Exception as e:
            self._fail(FetchError("Failed to load canned responses"), e)
        return self.canned_responses

    def insert_canned_response(self, response: CannedResponse) -> None:
        """Put a canned response into the draft; sending stays explicit."""
        self.draft = response.content

    # -- internals --------------------------------------------------------

    @property
    def _is_admin(self) -> bool:
        return self.viewer is SenderRole.ADMIN

    def _ensure_open(self) -> Ticket:
        if not self.is_open or self.ticket is None:
            raise TicketDeskError("view_not_open", "Ticket view is not open")
        return self.ticket

    def _emit_read(self) -> None:
        if self.is_open:
            self._channel.send(SignalKind.READ, ReadPayload(  # type: ignore[union-attr]
                is_admin=self._is_admin, timestamp=datetime.now(timezone.utc),
            ))

    def _set_ticket(self, ticket: Ticket) -> None:
        if self._closed or ticket == self.ticket:
            return
        self.ticket = ticket
        self._notify("ticket")

    def _do_render(self) -> None:
        if self._render:
            self._render(self)

    def _fail(self, error: TicketDeskError, cause: BaseException) -> None:
        logger.warning(f"{error} ({self.ticket_ref}): {cause}")
        self.notices.append(Notice("error", str(error), error.code))
        self._notify("notice")

    def _notify(self, kind: str) -> None:
        if self._closed:
            return
        for listener in list(self._listeners):
            listener(kind)

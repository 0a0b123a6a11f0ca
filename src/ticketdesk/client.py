"""
AsyncTicketDesk / TicketDesk — main clients.
"""

import asyncio
from typing import Any, Callable, Optional

from ticketdesk.errors import ConnectionError
from ticketdesk.models.message import Message, SenderRole
from ticketdesk.models.ticket import Ticket, TicketPriority, TicketStatus
from ticketdesk.scroll import Viewport
from ticketdesk.store import TranscriptStore
from ticketdesk.transport.http import DEFAULT_BASE_URL, HttpClient
from ticketdesk.transport.socketio import RealtimeManager
from ticketdesk.view import TicketView


class AsyncTicketDesk:
    """Async support desk client (primary)."""

    def __init__(
        self,
        api_key: str = "",
        access_token: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        realtime_url: Optional[str] = None,
        viewer: SenderRole = SenderRole.ADMIN,
        viewer_id: Optional[str] = None,
        transports: Optional[list[str]] = None,
        ready_timeout: float = 15.0,
        **view_options: Any,
    ):
        self._base_url = base_url
        self._realtime_url = realtime_url or base_url
        self._api_key = api_key
        self._access_token = access_token
        self._transports = transports
        self._ready_timeout = ready_timeout
        self.viewer = viewer
        self.viewer_id = viewer_id
        self._view_options = view_options

        self.http = HttpClient(base_url=base_url, api_key=api_key, token=access_token)
        self.store = TranscriptStore(self.http)
        self._realtime: Optional[RealtimeManager] = None
        self._views: list[TicketView] = []

    @property
    def connected(self) -> bool:
        return self._realtime is not None and self._realtime.connected

    async def connect(self, access_token: Optional[str] = None) -> None:
        token = access_token or self._access_token
        if not self._api_key:
            raise ConnectionError("api_key required. Run `ticketdesk auth login` first.")
        self.http.set_token(token)
        self._realtime = RealtimeManager(
            url=self._realtime_url,
            api_key=self._api_key,
            access_token=token,
            transports=self._transports,
            ready_timeout=self._ready_timeout,
        )
        await self._realtime.connect()

    async def disconnect(self) -> None:
        for view in list(self._views):
            view.close()
        self._views.clear()
        if self._realtime:
            await self._realtime.disconnect()
            self._realtime = None

    async def close(self) -> None:
        await self.disconnect()
        await self.http.close()

    def view(
        self,
        ticket_ref: str,
        viewport: Optional[Viewport] = None,
        render: Optional[Callable[[TicketView], None]] = None,
        **options: Any,
    ) -> TicketView:
        """Create (but do not open) a live view; use `async with desk.view(ref) as v`."""
        self._ensure_connected()
        view = TicketView(
            self.store,
            self._realtime,  # type: ignore[arg-type]
            ticket_ref,
            viewer=self.viewer,
            viewer_id=self.viewer_id,
            viewport=viewport,
            render=render,
            **{**self._view_options, **options},
        )
        self._views.append(view)
        return view

    async def open_ticket(self, ticket_ref: str, **options: Any) -> TicketView:
        """Open a live view on a ticket — caller must close() it."""
        return await self.view(ticket_ref, **options).open()

    # One-shot store operations, no realtime connection needed.

    async def get_ticket(self, ticket_ref: str) -> Ticket:
        return await self.store.get_ticket(ticket_ref)

    async def list_messages(self, ticket_ref: str) -> list[Message]:
        ticket = await self.store.get_ticket(ticket_ref)
        return await self.store.list_messages(ticket.id)

    async def update_ticket(
        self, ticket_ref: str, status: Optional[TicketStatus] = None, priority: Optional[TicketPriority] = None,
    ) -> Ticket:
        ticket = await self.store.get_ticket(ticket_ref)
        await self.store.update_ticket(ticket.id, status=status, priority=priority)
        return await self.store.get_ticket(ticket.id)

    def _ensure_connected(self) -> None:
        if not self._realtime or not self._realtime.connected:
            raise ConnectionError("Not connected. Call connect() first.")


class TicketDesk:
    """Sync wrapper around AsyncTicketDesk's one-shot store operations."""

    def __init__(self, **kwargs: Any):
        self._async = AsyncTicketDesk(**kwargs)
        self._loop = asyncio.new_event_loop()

    def _run(self, coro: Any) -> Any:
        return self._loop.run_until_complete(coro)

    @property
    def store(self) -> TranscriptStore:
        return self._async.store

    def get_ticket(self, ticket_ref: str) -> Ticket:
        return self._run(self._async.get_ticket(ticket_ref))

    def list_messages(self, ticket_ref: str) -> list[Message]:
        return self._run(self._async.list_messages(ticket_ref))

    def update_ticket(self, ticket_ref: str, **kwargs: Any) -> Ticket:
        return self._run(self._async.update_ticket(ticket_ref, **kwargs))

    def close(self) -> None:
        self._run(self._async.close())
        self._loop.close()

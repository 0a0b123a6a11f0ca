"""
Realtime connection manager.

One Socket.IO connection carries every realtime topic: row-change
notifications (`postgres_changes`) and per-ticket broadcasts (`broadcast`).
connect() waits for the server's `ready` event before resolving.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import socketio

from ticketdesk.models.envelope import RealtimeEvent, RealtimeFrame
from ticketdesk.transport.envelope import build_frame, parse_frame

SOCKETIO_PATH = "/realtime/v1/socket.io/"

logger = logging.getLogger("ticketdesk.transport.socketio")

FrameHandler = Callable[[str, RealtimeFrame], None]


class RealtimeManager:
    def __init__(
        self,
        url: str,
        api_key: str,
        access_token: Optional[str] = None,
        transports: Optional[list[str]] = None,
        ready_timeout: float = 15.0,
    ):
        self._url = url
        self._api_key = api_key
        self._access_token = access_token
        self._transports = transports or ["websocket"]
        self._ready_timeout = ready_timeout
        self._sio: Optional[socketio.AsyncClient] = None
        self._connected = False
        self._event_handlers: list[FrameHandler] = []
        self._topics: dict[str, int] = {}

    @property
    def connected(self) -> bool:
        return self._connected and self._sio is not None and self._sio.connected

    def add_event_handler(self, handler: FrameHandler) -> Callable[[], None]:
        """Add a frame handler. Returns a cleanup function; calling it twice is harmless."""
        self._event_handlers.append(handler)
        def remove() -> None:
            try:
                self._event_handlers.remove(handler)
            except ValueError:
                pass
        return remove

    async def connect(self) -> None:
        if self._sio and self._sio.connected:
            return

        self._sio = socketio.AsyncClient()
        ready_event = asyncio.Event()

        @self._sio.on(RealtimeEvent.READY)
        async def on_ready(*_args: Any) -> None:
            self._connected = True
            ready_event.set()
            # Resubscribe after a reconnect; the server forgets our topics.
            for topic in list(self._topics):
                self._emit(RealtimeEvent.SUBSCRIBE, build_frame(topic, RealtimeEvent.SUBSCRIBE))

        @self._sio.on(RealtimeEvent.POSTGRES_CHANGES)
        async def on_changes(data: Any) -> None:
            self._dispatch(RealtimeEvent.POSTGRES_CHANGES, data)

        @self._sio.on(RealtimeEvent.BROADCAST)
        async def on_broadcast(data: Any) -> None:
            self._dispatch(RealtimeEvent.BROADCAST, data)

        @self._sio.event
        async def disconnect(_reason: str = "") -> None:
            self._connected = False

        auth = {"apikey": self._api_key}
        if self._access_token:
            auth["token"] = self._access_token
        await self._sio.connect(
            self._url,
            auth=auth,
            transports=self._transports,
            socketio_path=SOCKETIO_PATH,
        )

        try:
            await asyncio.wait_for(ready_event.wait(), timeout=self._ready_timeout)
        except asyncio.TimeoutError:
            await self._sio.disconnect()
            raise TimeoutError(f"Timed out waiting for 'ready' event after {self._ready_timeout}s")

    def _dispatch(self, event: str, data: Any) -> None:
        frame = parse_frame(data)
        if frame is None:
            logger.debug("Dropping malformed %s frame", event)
            return
        if frame.topic not in self._topics:
            return
        for handler in list(self._event_handlers):
            handler(event, frame)

    def join(self, topic: str) -> Callable[[], None]:
        """Subscribe to a topic. Returns a leave function that only acts once."""
        first = self._topics.get(topic, 0) == 0
        self._topics[topic] = self._topics.get(topic, 0) + 1
        if first and self.connected:
            self._emit(RealtimeEvent.SUBSCRIBE, build_frame(topic, RealtimeEvent.SUBSCRIBE))

        left = False

        def leave() -> None:
            nonlocal left
            if left:
                return
            left = True
            remaining = self._topics.get(topic, 0) - 1
            if remaining > 0:
                self._topics[topic] = remaining
                return
            self._topics.pop(topic, None)
            if self.connected:
                self._emit(RealtimeEvent.UNSUBSCRIBE, build_frame(topic, RealtimeEvent.UNSUBSCRIBE))
        return leave

    def broadcast(self, topic: str, kind: str, payload: dict[str, Any]) -> None:
        """Send an ephemeral broadcast on a topic. Best effort, no delivery guarantee."""
        if not self.connected:
            logger.debug("Skipping %s broadcast on %s: not connected", kind, topic)
            return
        frame = build_frame(topic, RealtimeEvent.BROADCAST, {"event": kind, "payload": payload})
        self._emit(RealtimeEvent.BROADCAST, frame)

    def _emit(self, event: str, frame: dict[str, Any]) -> None:
        """Schedule the async emit on the running loop. Errors are logged."""
        async def _do_emit() -> None:
            try:
                await self._sio.emit(event, frame)  # type: ignore[union-attr]
            except Exception as e:
                logger.error(f"Emit failed for {event}: {e}")

        try:
            loop = asyncio.get_running_loop()
            loop.create_task(_do_emit())
        except RuntimeError:
            asyncio.ensure_future(_do_emit())

    async def disconnect(self) -> None:
        self._connected = False
        self._topics.clear()
        if self._sio:
            await self._sio.disconnect()
            self._sio = None

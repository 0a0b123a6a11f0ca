"""
Poller — periodic full re-fetch, the backstop for missed change-feed events.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

DEFAULT_POLL_INTERVAL_S = 5.0

logger = logging.getLogger("ticketdesk.poller")


class Poller:
    """Calls `tick` every `interval` seconds until stopped.

    A failing tick is logged and the next one runs on schedule; the poller
    only stops when stop() is called.
    """

    def __init__(self, tick: Callable[[], Awaitable[Any]], interval: float = DEFAULT_POLL_INTERVAL_S):
        self._tick = tick
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self._tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Poll failed, retrying in {self.interval}s: {e}")

    def stop(self) -> None:
        """Cancel the poll loop. Safe to call more than once."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

"""
Connectivity tracking.

The monitor holds the current online/offline state and tells listeners about
transitions. State changes come either from the host application
(set_online) or from polling a probe coroutine such as
RemoteApiClient.ping.
"""

import asyncio
import inspect
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)

ConnectionListener = Callable[[bool], None]


class ConnectionMonitor:
    """Online/offline state with change listeners."""

    def __init__(
        self,
        initial_online: bool = True,
        probe: Optional[Callable[[], Awaitable[bool]]] = None,
    ):
        self._online = initial_online
        self._probe = probe
        self._listeners: List[ConnectionListener] = []
        self._poll_task: Optional[asyncio.Task] = None
        self._listener_tasks = set()
        self.last_change: Optional[datetime] = None

    @property
    def is_online(self) -> bool:
        return self._online

    def add_listener(self, listener: ConnectionListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_online(self, online: bool) -> None:
        """Record the current state; listeners fire only on an actual change."""
        if online == self._online:
            return
        self._online = online
        self.last_change = datetime.now()
        logger.info(f"[CONNECTION] {'online' if online else 'offline'}")

        for listener in list(self._listeners):
            try:
                result = listener(online)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._listener_tasks.add(task)
                    task.add_done_callback(self._listener_tasks.discard)
            except Exception as e:
                logger.error(f"[CONNECTION] listener failed: {e}", exc_info=True)

    async def check_connection(self) -> bool:
        """Run the probe once and update state. Without a probe, keep the current state."""
        if self._probe is None:
            return self._online
        try:
            online = bool(await self._probe())
        except Exception as e:
            logger.warning(f"[CONNECTION] probe failed: {e}")
            online = False
        self.set_online(online)
        return online

    async def _poll(self, interval: float) -> None:
        while True:
            await self.check_connection()
            await asyncio.sleep(interval)

    def start(self, interval: float = 30.0) -> None:
        """Start polling the probe in the background."""
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll(interval))

    async def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

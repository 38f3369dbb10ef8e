"""
Reload broadcaster
Owns the registry of live reload connections and fans reload messages out
"""
import asyncio
import logging
import threading
from typing import Dict, List, Protocol

log = logging.getLogger(__name__)


class ReloadConnection(Protocol):
    """Anything that can push a text frame to a browser"""

    async def send_text(self, data: str) -> None: ...


class ReloadBroadcaster:
    """
    Registry of connected reload clients

    A connection stays registered until it is observed closed, either by its
    receive loop (unregister) or by a failed send during a broadcast. Once
    unregistered it never receives another send.
    """

    def __init__(self, message: str = "reload", send_timeout: float = 2.0):
        self.message = message
        self.send_timeout = send_timeout
        # Keyed by identity; registered connections stay referenced here so
        # their ids cannot be reused while present
        self._clients: Dict[int, ReloadConnection] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)

    def __contains__(self, conn: ReloadConnection) -> bool:
        with self._lock:
            return id(conn) in self._clients

    def register(self, conn: ReloadConnection):
        """Add a connection to the registry"""
        with self._lock:
            self._clients[id(conn)] = conn
            total = len(self._clients)
        log.info("Reload client connected (%d connected)", total)

    def unregister(self, conn: ReloadConnection) -> bool:
        """Remove a connection; returns False if it was already gone"""
        with self._lock:
            if self._clients.pop(id(conn), None) is None:
                return False
            total = len(self._clients)
        log.info("Reload client disconnected (%d connected)", total)
        return True

    def snapshot(self) -> List[ReloadConnection]:
        with self._lock:
            return list(self._clients.values())

    async def _deliver(self, conn: ReloadConnection) -> bool:
        # Membership is checked in the same step that starts the send, so a
        # connection unregistered before this point is never written to
        if conn not in self:
            return False
        await conn.send_text(self.message)
        return True

    async def _send(self, conn: ReloadConnection) -> bool:
        try:
            return await asyncio.wait_for(self._deliver(conn), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            log.warning("Reload send timed out after %.1fs, dropping client", self.send_timeout)
        except Exception as e:
            log.warning("Reload send failed, dropping client: %s", e)
        self.unregister(conn)
        return False

    async def broadcast_reload(self) -> int:
        """
        Send the reload message to every client registered right now
        Returns the number of clients that accepted it
        """
        clients = self.snapshot()
        if not clients:
            log.info("Change detected but no reload clients connected")
            return 0

        results = await asyncio.gather(*(self._send(conn) for conn in clients))
        delivered = sum(1 for ok in results if ok)
        log.info("Reload sent to %d/%d clients", delivered, len(clients))
        return delivered

    async def close_all(self, code: int = 1001):
        """Unregister and close every connection (server shutdown)"""
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()

        for conn in clients:
            close = getattr(conn, "close", None)
            if close is None:
                continue
            try:
                await close(code=code)
            except Exception as e:
                log.debug("Error closing reload client: %s", e)

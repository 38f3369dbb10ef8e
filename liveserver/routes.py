"""FastAPI routes: reload socket and health check"""
import logging
from typing import Callable

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from liveserver.broadcaster import ReloadBroadcaster
from liveserver.config import HEALTH_PATH, Settings
from liveserver.models import HealthStatus

log = logging.getLogger(__name__)


def create_router(
    settings: Settings,
    broadcaster: ReloadBroadcaster,
    is_watching: Callable[[], bool] = lambda: False,
) -> APIRouter:
    """Routes bound to one broadcaster instance"""
    router = APIRouter()

    @router.websocket(settings.reload_path)
    async def reload_socket(websocket: WebSocket):
        """
        Reload connection
        The server only pushes; the receive loop exists to notice when the
        browser goes away (Registered -> Closed), then the client is dropped
        """
        await websocket.accept()
        broadcaster.register(websocket)
        try:
            while True:
                # Text or binary frames from the browser carry nothing
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    log.debug("Reload client closed the connection (code %s)", message.get("code"))
                    break
        except WebSocketDisconnect as e:
            log.debug("Reload client closed the connection (code %s)", e.code)
        except RuntimeError as e:
            # Raised when the socket was already closed on our side
            log.debug("Reload connection ended: %s", e)
        finally:
            broadcaster.unregister(websocket)

    @router.get(HEALTH_PATH, response_model=HealthStatus)
    async def health():
        """Health check"""
        return HealthStatus(
            root=str(settings.root),
            entry=settings.entry,
            clients=len(broadcaster),
            watching=is_watching(),
        )

    return router

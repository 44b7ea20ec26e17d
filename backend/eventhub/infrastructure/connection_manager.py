"""
Real-time notification transport over WebSockets.

Tracks open sockets per user id. Emitting to a user with no open socket is a
silent no-op that returns False; sockets that fail on send are dropped.
"""

from typing import Any, Dict, Protocol, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from eventhub.core.logging import get_logger
from eventhub.core.metrics import realtime_connections

logger = get_logger(__name__)


class NotificationChannel(Protocol):
    async def emit_to_user(self, user_id: int, event: str, payload: dict[str, Any]) -> bool: ...

    async def emit_to_all(self, event: str, payload: dict[str, Any]) -> None: ...


class ConnectionManager:
    def __init__(self):
        self.user_connections: Dict[int, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, user_id: int):
        await websocket.accept()
        self.user_connections.setdefault(user_id, set()).add(websocket)
        realtime_connections.set(len(self.user_connections))
        logger.info("socket_connected", user_id=user_id, sockets=len(self.user_connections[user_id]))

    async def disconnect(self, websocket: WebSocket, user_id: int):
        sockets = self.user_connections.get(user_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self.user_connections[user_id]
        realtime_connections.set(len(self.user_connections))
        logger.info("socket_disconnected", user_id=user_id)

    async def emit_to_user(self, user_id: int, event: str, payload: dict[str, Any]) -> bool:
        sockets = self.user_connections.get(user_id)
        if not sockets:
            return False

        message = {"event": event, "data": jsonable_encoder(payload)}
        delivered = 0
        disconnected = []
        for websocket in list(sockets):
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning("socket_send_failed", user_id=user_id, error=str(e))
                disconnected.append(websocket)

        for ws in disconnected:
            await self.disconnect(ws, user_id)
        return delivered > 0

    async def emit_to_all(self, event: str, payload: dict[str, Any]) -> None:
        for user_id in list(self.user_connections):
            await self.emit_to_user(user_id, event, payload)

    def is_user_online(self, user_id: int) -> bool:
        return user_id in self.user_connections

    def connected_count(self) -> int:
        return len(self.user_connections)


connection_manager = ConnectionManager()

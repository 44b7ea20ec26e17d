"""
Real-time notification socket.

Clients connect with `?token=<jwt>`. The server only pushes; anything the
client sends is ignored apart from keeping the connection alive.
"""

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from eventhub.core.exceptions import AppError
from eventhub.core.logging import get_logger
from eventhub.core.security import decode_access_token, get_active_user
from eventhub.db.session import AsyncSessionLocal
from eventhub.infrastructure.connection_manager import connection_manager

logger = get_logger(__name__)
router = APIRouter(prefix="/ws", tags=["Realtime"])


@router.websocket("/notifications")
async def notifications_socket(websocket: WebSocket, token: str = Query(...)):
    try:
        user_id = decode_access_token(token)
        async with AsyncSessionLocal() as db:
            await get_active_user(db, user_id)
    except AppError as e:
        logger.info("socket_rejected", reason=e.code)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await connection_manager.connect(websocket, user_id)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await connection_manager.disconnect(websocket, user_id)

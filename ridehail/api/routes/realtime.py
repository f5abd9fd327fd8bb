"""
WS /api/v1/ws?token=<jwt> -- live channel for one user.

Registers the socket in the Presence Directory for as long as it is open.
Notifications and location updates are pushed by the server; the only
client message understood is ``ping``.
"""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from ridehail.domain.errors import AuthError
from ridehail.services.presence import Connection

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def realtime(websocket: WebSocket, token: str = ""):
    services = websocket.app.state.services
    try:
        actor = services.identity.resolve(token)
    except AuthError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection = Connection(websocket.send_json, actor.user_id, actor.role)
    services.presence.register(actor.user_id, connection)
    writer = asyncio.create_task(connection.pump())
    try:
        while True:
            message = await websocket.receive_text()
            if message.strip() == "ping":
                connection.offer({"event": "pong"})
    except WebSocketDisconnect:
        logger.debug("Socket closed for user=%s", actor.user_id)
    finally:
        connection.close()
        services.presence.unregister(connection)
        writer.cancel()

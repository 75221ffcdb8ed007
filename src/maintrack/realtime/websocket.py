"""WebSocket endpoint — realtime event delivery to frontend clients.

Each client connects to /ws?token=JWT. The handler:
1. Authenticates via JWT query param (required outside development)
2. Registers the socket with the broadcaster
3. Auto-joins technicians to their private technician-{id} room
4. Serves joinRoom / leaveRoom / ping messages until disconnect

Outbound events are pushed by the broadcaster, not by this loop.
"""

import json

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from maintrack.config import settings
from maintrack.db.models import Role
from maintrack.realtime.broadcaster import (
    RoomBroadcaster,
    get_broadcaster,
    technician_room,
)

logger = structlog.get_logger()
router = APIRouter()


@router.websocket("/ws")
async def maintenance_websocket(
    websocket: WebSocket,
    broadcaster: RoomBroadcaster = Depends(get_broadcaster),
):
    """Long-lived connection — one per browser tab."""
    # ── Authentication ──────────────────────────────────────
    token = websocket.query_params.get("token")

    if not token and settings.environment != "development":
        await websocket.close(code=4001, reason="Authentication required")
        return

    claims = None
    if token:
        from maintrack.auth.jwt import TokenError, verify_token

        try:
            claims = verify_token(token)
        except TokenError:
            await websocket.close(code=4001, reason="Invalid or expired token")
            return

    # ── Connection accepted ─────────────────────────────────
    await websocket.accept()
    broadcaster.connect(websocket)
    if claims and claims.get("role") == Role.TECHNICIAN.value:
        broadcaster.join(websocket, technician_room(claims["sub"]))

    try:
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if not isinstance(msg, dict):
                continue

            if msg.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
                continue

            action = msg.get("action")
            room = msg.get("room")
            if not isinstance(room, str) or not room:
                continue
            if action == "joinRoom":
                broadcaster.join(websocket, room)
                await websocket.send_json({"event": "joinedRoom", "data": room})
            elif action == "leaveRoom":
                broadcaster.leave(websocket, room)
                await websocket.send_json({"event": "leftRoom", "data": room})
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(websocket)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()

"""
WebSocket router: real-time notification push.

Frontend connects to ws://host/ws/notifications?token=<access_token> and
receives one JSON event per notification written for that user.

Event shape:
  {
    "type": "NOTIFICATION",
    "id": "uuid",
    "notificationType": "login_alert",
    "title": "New login to your account",
    "message": "..."
  }

Note on auth: browsers cannot set an Authorization header on a WebSocket
handshake, so the access token is passed as a query param and validated on
connect. If invalid, the connection is immediately closed.
"""
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.dependencies import authenticate_access_token

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/notifications")
async def notifications_websocket(
    websocket: WebSocket,
    token: str = Query(..., description="JWT access token for authentication"),
    db: Session = Depends(get_db),
):
    """
    Connection lifecycle:
      1. Client sends: ws://host/ws/notifications?token=<access_token>
      2. Server validates token (same checks as every HTTP request)
      3. If invalid → close with code 1008 (Policy Violation)
      4. If valid → accept and register connection under the user's id
      5. Server pushes NOTIFICATION events as they are created
      6. Client disconnects → connection cleaned up from manager

    The client can send "ping" to keep the connection warm through proxies
    that close idle WebSockets.
    """
    # ── Authenticate before accepting ────────────────────────────────────────
    try:
        user = authenticate_access_token(db, token)
    except HTTPException as exc:
        logger.info(f"WS rejected: {exc.detail}")
        await websocket.close(code=1008, reason="Unauthorized")
        return

    user_id = str(user.id)
    manager = websocket.app.state.connection_manager

    # ── Accept and register connection ────────────────────────────────────────
    await manager.connect(websocket, user_id)

    try:
        await websocket.send_json({
            "type": "CONNECTED",
            "message": "Connected to notifications",
        })

        # Keep connection alive; wait for client messages (or disconnect)
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")

    except WebSocketDisconnect:
        manager.disconnect(websocket, user_id)

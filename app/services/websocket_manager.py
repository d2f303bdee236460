"""
WebSocket connection registry.

Maps user_id → live WebSocket connections so notifications can be pushed in
real time. Push is best-effort: a user with no open socket simply reads the
notification later from GET /notifications.

The registry is created in create_app() and stored on app.state; handlers get
it through get_connection_manager() rather than importing a global.

Limitation: in-memory, so it only reaches sockets held by this process. If you
ever scale to multiple server instances, replace this with Redis Pub/Sub.
"""
from fastapi import Request, WebSocket
from typing import Dict, List
import logging

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self):
        # Maps user_id (str) → list of active WebSocket connections
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, user_id: str) -> None:
        """Accept a new WebSocket connection and register it for a user."""
        await websocket.accept()
        self.active_connections.setdefault(user_id, []).append(websocket)
        logger.info(f"WS connected: user={user_id}, total={len(self.active_connections[user_id])}")

    def disconnect(self, websocket: WebSocket, user_id: str) -> None:
        """Remove a disconnected WebSocket from the registry."""
        if user_id in self.active_connections:
            try:
                self.active_connections[user_id].remove(websocket)
            except ValueError:
                pass  # already removed
            if not self.active_connections[user_id]:
                del self.active_connections[user_id]
        logger.info(f"WS disconnected: user={user_id}")

    def connection_count(self, user_id: str) -> int:
        return len(self.active_connections.get(user_id, []))

    async def push_to_user(self, user_id: str, data: dict) -> None:
        """
        Send one event to every socket the user has open.
        Dead connections (client closed tab, network drop) are automatically cleaned up.
        """
        connections = list(self.active_connections.get(user_id, []))
        if not connections:
            return

        dead: List[WebSocket] = []
        for connection in connections:
            try:
                await connection.send_json(data)
            except Exception:
                # Connection is broken; mark for cleanup
                dead.append(connection)

        for conn in dead:
            self.disconnect(conn, user_id)


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.connection_manager

import logging
from typing import Dict, List
from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self):
        # Store connections by signing session ID
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, session_id: str):
        await websocket.accept()

        if session_id not in self.active_connections:
            self.active_connections[session_id] = []

        self.active_connections[session_id].append(websocket)
        logger.debug(f"WebSocket connected to signing session {session_id}")

    def disconnect(self, websocket: WebSocket, session_id: str):
        connections = self.active_connections.get(session_id)
        if connections and websocket in connections:
            connections.remove(websocket)
        if not connections:
            self.active_connections.pop(session_id, None)

    def connection_count(self, session_id: str) -> int:
        return len(self.active_connections.get(session_id, []))

    async def broadcast_to_session(self, message: dict, session_id: str):
        connections = self.active_connections.get(session_id)
        if not connections:
            return

        for connection in list(connections):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.warning(f"Dropping WebSocket for session {session_id}: {e}")
                # Remove broken connections
                self.disconnect(connection, session_id)

    def close_session(self, session_id: str):
        self.active_connections.pop(session_id, None)


# Global connection manager instance
manager = ConnectionManager()

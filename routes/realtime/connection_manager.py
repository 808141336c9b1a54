from fastapi import WebSocket
from datetime import datetime, date
from enum import Enum
from typing import Dict, List
from threading import Lock
import logging


def serialize_for_json(obj):
    """Convert datetime and enum values so the payload can go through send_json"""
    if isinstance(obj, dict):
        return {k: serialize_for_json(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [serialize_for_json(i) for i in obj]
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Enum):
        return obj.value
    else:
        return obj


# WebSocket manager for a live view (one instance per board)
class ConnectionManager:
    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}
        self.lock = Lock()

    async def connect(self, websocket: WebSocket, client_id: str):
        await websocket.accept()
        with self.lock:
            if client_id not in self.active_connections:
                self.active_connections[client_id] = []
            self.active_connections[client_id].append(websocket)

    def disconnect(self, websocket: WebSocket, client_id: str):
        with self.lock:
            if client_id in self.active_connections:
                if websocket in self.active_connections[client_id]:
                    self.active_connections[client_id].remove(websocket)
                if not self.active_connections[client_id]:
                    del self.active_connections[client_id]

    @property
    def connection_count(self) -> int:
        return sum(len(connections) for connections in self.active_connections.values())

    async def broadcast(self, message: Dict):
        message = serialize_for_json(message)
        disconnected = []
        for client_id, connections in list(self.active_connections.items()):
            for connection in list(connections):
                try:
                    await connection.send_json(message)
                except RuntimeError:
                    disconnected.append((connection, client_id))

        # Clean up disconnected connections
        for conn, client in disconnected:
            logging.info(f"Dropping closed websocket for {client}")
            self.disconnect(conn, client)

    async def send_personal_message(self, message: Dict, websocket: WebSocket):
        await websocket.send_json(serialize_for_json(message))

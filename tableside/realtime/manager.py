import logging
from collections import defaultdict
from typing import Any

from fastapi import WebSocket


class ConnectionManager:
    """Live diner sockets grouped by room, for events that are not collection snapshots."""

    def __init__(self) -> None:
        self._connections: dict[str, list[tuple[WebSocket, str]]] = defaultdict(list)

    async def connect(self, room: str, websocket: WebSocket, phone_number: str) -> None:
        self._connections[room].append((websocket, phone_number))
        logger.info("WS connect room=%s phone=%s total=%s", room, phone_number, len(self._connections[room]))

    def disconnect(self, room: str, websocket: WebSocket) -> None:
        if room not in self._connections:
            return
        self._connections[room] = [
            (ws, p) for (ws, p) in self._connections[room] if ws is not websocket
        ]
        if not self._connections[room]:
            self._connections.pop(room, None)
        else:
            logger.info("WS disconnect room=%s total=%s", room, len(self._connections[room]))

    def count(self, room: str | None = None) -> int:
        if room is not None:
            return len(self._connections.get(room, []))
        return sum(len(conns) for conns in self._connections.values())

    async def broadcast(self, room: str, event_type: str, payload: dict[str, Any]) -> int:
        if room not in self._connections:
            return 0

        sent = 0
        to_remove: list[WebSocket] = []
        for websocket, phone_number in list(self._connections[room]):
            try:
                await websocket.send_json({"type": event_type, "data": payload})
                sent += 1
            except Exception:
                logger.exception("WS broadcast failed room=%s phone=%s", room, phone_number)
                to_remove.append(websocket)

        if to_remove:
            self._connections[room] = [
                (ws, p) for (ws, p) in self._connections[room] if ws not in to_remove
            ]
            if not self._connections[room]:
                self._connections.pop(room, None)
            else:
                logger.info("WS pruned room=%s total=%s", room, len(self._connections[room]))
        return sent


logger = logging.getLogger("tableside.ws")
manager = ConnectionManager()

import logging

from fastapi import WebSocket, WebSocketDisconnect

from turnwatch.errors import DeliveryError

log = logging.getLogger(__name__)


class RoomConnectionManager:
    """Keeps the WebSocket listeners of every room; acts as the notification sink."""

    def __init__(self):
        self.active_connections: dict[str, set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, room_id: str):
        await websocket.accept()
        self.active_connections.setdefault(room_id, set()).add(websocket)
        log.info("Listener joined room %s", room_id)

    def disconnect(self, websocket: WebSocket, room_id: str):
        listeners = self.active_connections.get(room_id)
        if listeners is None:
            return
        listeners.discard(websocket)
        if not listeners:
            del self.active_connections[room_id]
        log.info("Listener left room %s", room_id)

    async def send(self, room_id: str, message: dict) -> None:
        listeners = list(self.active_connections.get(room_id, ()))
        if not listeners:
            raise DeliveryError(f"No listener connected to room {room_id}", room_id=room_id)

        delivered = 0
        for ws in listeners:
            try:
                await ws.send_json(message)
                delivered += 1
            except Exception:
                log.debug("Failed to send to a listener of room %s", room_id)
                self.disconnect(ws, room_id)
        if not delivered:
            raise DeliveryError(f"Every listener of room {room_id} failed", room_id=room_id)


async def room_websocket(websocket: WebSocket, room_id: str, manager: RoomConnectionManager):
    await manager.connect(websocket, room_id)
    await websocket.send_json({"type": "connected", "room_id": room_id})
    try:
        while True:
            # Listeners only receive; anything they send is ignored.
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket, room_id)

import pytest
from fastapi import WebSocketDisconnect

from turnwatch.errors import DeliveryError
from turnwatch.ws.handler import RoomConnectionManager, room_websocket


class FakeWebSocket:
    def __init__(self, fail=False, incoming=()):
        self.fail = fail
        self.accepted = False
        self.sent = []
        self.incoming = list(incoming)

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    async def receive_text(self):
        if self.incoming:
            return self.incoming.pop(0)
        raise WebSocketDisconnect()


@pytest.mark.asyncio
async def test_send_reaches_every_listener_of_room():
    manager = RoomConnectionManager()
    first, second, other = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
    await manager.connect(first, "!a")
    await manager.connect(second, "!a")
    await manager.connect(other, "!b")

    await manager.send("!a", {"type": "turn_alert"})

    assert first.sent == [{"type": "turn_alert"}]
    assert second.sent == [{"type": "turn_alert"}]
    assert other.sent == []


@pytest.mark.asyncio
async def test_send_without_listeners_raises():
    manager = RoomConnectionManager()

    with pytest.raises(DeliveryError) as excinfo:
        await manager.send("!empty", {"type": "turn_alert"})
    assert excinfo.value.room_id == "!empty"


@pytest.mark.asyncio
async def test_broken_listener_is_dropped():
    manager = RoomConnectionManager()
    good, broken = FakeWebSocket(), FakeWebSocket(fail=True)
    await manager.connect(good, "!a")
    await manager.connect(broken, "!a")

    await manager.send("!a", {"type": "turn_alert"})

    assert good.sent == [{"type": "turn_alert"}]
    assert manager.active_connections["!a"] == {good}


@pytest.mark.asyncio
async def test_all_listeners_failing_raises():
    manager = RoomConnectionManager()
    await manager.connect(FakeWebSocket(fail=True), "!a")

    with pytest.raises(DeliveryError):
        await manager.send("!a", {"type": "turn_alert"})
    assert "!a" not in manager.active_connections


@pytest.mark.asyncio
async def test_room_websocket_session():
    manager = RoomConnectionManager()
    ws = FakeWebSocket(incoming=["ping"])

    await room_websocket(ws, "!a", manager)

    assert ws.accepted
    assert ws.sent == [{"type": "connected", "room_id": "!a"}]
    assert manager.active_connections == {}

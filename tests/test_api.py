import pytest

from factories import make_game, make_snapshot

ROOM = "!room:example.org"
USER = "@ann:example.org"


@pytest.fixture
def snapshot(bot):
    bot.polling.latest = make_snapshot(
        make_game("g1", {"Alice": True, "Bob": False}),
        make_game("g2", {"Carol": False}),
    )
    return bot.polling.latest


@pytest.mark.asyncio
async def test_root(client):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json()["service"] == "turnwatch"


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["polling"] == "running"
    assert data["alerts"] == 0


@pytest.mark.asyncio
async def test_games_empty_before_first_poll(client):
    resp = await client.get("/api/games")
    assert resp.status_code == 200
    assert resp.json() == []


@pytest.mark.asyncio
async def test_games_lists_snapshot(client, snapshot):
    resp = await client.get("/api/games")
    assert resp.status_code == 200
    games = resp.json()
    assert [g["id"] for g in games] == ["g1", "g2"]
    assert games[0]["players"][0] == {"name": "Alice", "color": "color0", "is_turn": True}


@pytest.mark.asyncio
async def test_chat_command_round_trip(client, snapshot):
    resp = await client.post(
        f"/api/rooms/{ROOM}/commands",
        json={"sender": USER, "body": "!turnwatch register g1 Alice 15"},
    )
    assert resp.status_code == 200
    assert resp.json()["reply"] == "You have been registered successfully."

    resp = await client.post(
        f"/api/rooms/{ROOM}/commands",
        json={"sender": USER, "body": "!turnwatch alerts"},
    )
    assert "- g1: Alice after 15 min" in resp.json()["reply"]


@pytest.mark.asyncio
async def test_chat_message_not_for_bot(client):
    resp = await client.post(
        f"/api/rooms/{ROOM}/commands",
        json={"sender": USER, "body": "anyone up for a game?"},
    )
    assert resp.status_code == 200
    assert resp.json()["reply"] is None


@pytest.mark.asyncio
async def test_register_and_list_alerts(client, snapshot):
    resp = await client.post(
        f"/api/rooms/{ROOM}/alerts",
        json={"user_id": USER, "game_id": "g1", "player_name": "Alice", "delay_minutes": 30},
    )
    assert resp.status_code == 201
    assert resp.json()["delay_minutes"] == 30

    resp = await client.get(f"/api/rooms/{ROOM}/alerts")
    assert resp.status_code == 200
    alerts = resp.json()
    assert len(alerts) == 1
    assert alerts[0]["player_name"] == "Alice"
    assert alerts[0]["user_id"] == USER


@pytest.mark.asyncio
async def test_register_invalid_delay_returns_422(client, snapshot):
    resp = await client.post(
        f"/api/rooms/{ROOM}/alerts",
        json={"user_id": USER, "game_id": "g1", "player_name": "Alice", "delay_minutes": 0},
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "INVALID_DELAY"


@pytest.mark.asyncio
async def test_register_unknown_player_returns_422(client, snapshot):
    resp = await client.post(
        f"/api/rooms/{ROOM}/alerts",
        json={"user_id": USER, "game_id": "g1", "player_name": "Zed", "delay_minutes": 5},
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "PLAYER_NOT_FOUND"


@pytest.mark.asyncio
async def test_unregister(client, snapshot, bot):
    await bot.store.register(ROOM, "g1", USER, "Alice", 5)

    resp = await client.delete(f"/api/rooms/{ROOM}/alerts/g1")
    assert resp.status_code == 204
    assert bot.store.get(ROOM, "g1") is None


@pytest.mark.asyncio
async def test_unregister_missing_returns_404(client):
    resp = await client.delete(f"/api/rooms/{ROOM}/alerts/g1")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "ALERT_NOT_FOUND"

"""Tests for the Terraforming Mars HTTP source, against a mocked transport."""
import httpx
import pytest

from turnwatch.errors import HardStopPollError, TransientPollError
from turnwatch.tmars.source import TMarsSource
from turnwatch.tmars.structs import Phase, Snapshot

from factories import make_game

BASE_URL = "http://tmars.test"


def _server(games=None, details=None, waiting=None, overrides=None):
    """Build a MockTransport that serves a fake game server.

    ``overrides`` maps ``(path, id)`` to a ready-made ``httpx.Response``.
    """
    games = games or []
    details = details or {}
    waiting = waiting or {}
    overrides = overrides or {}

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        key = request.url.params.get("id") or request.url.params.get("serverId")
        if (path, key) in overrides:
            return overrides[(path, key)]
        if path == "/api/games":
            return httpx.Response(200, json=[{"gameId": g} for g in games])
        if path == "/api/game" and key in details:
            return httpx.Response(200, json=details[key])
        if path == "/api/waitingfor" and key in waiting:
            return httpx.Response(200, json={"result": "WAIT", "waitingFor": waiting[key]})
        return httpx.Response(404, text="Not found")

    return httpx.MockTransport(handler)


def _source(transport):
    return TMarsSource(BASE_URL, "srv", client=httpx.AsyncClient(transport=transport))


def _detail(game_id, phase="action", players=None):
    return {
        "id": game_id,
        "phase": phase,
        "spectatorId": f"spec-{game_id}",
        "players": players if players is not None else [
            {"id": f"{game_id}-a", "name": "Alice", "color": "red"},
            {"id": f"{game_id}-b", "name": "Bob", "color": "blue"},
        ],
    }


@pytest.mark.asyncio
async def test_fetch_builds_snapshot_and_skips_finished_games():
    transport = _server(
        games=["g1", "g2"],
        details={"g1": _detail("g1"), "g2": _detail("g2", phase="end")},
        waiting={"spec-g1": ["blue"]},
    )
    source = _source(transport)

    snapshot = await source.fetch_games()
    await source.aclose()

    assert list(snapshot.games) == ["g1"]
    assert snapshot.complete
    game = snapshot.games["g1"]
    assert game.phase is Phase.ACTION
    assert game.spectator_id == "spec-g1"
    alice, bob = game.players
    assert (alice.name, alice.is_turn) == ("Alice", False)
    assert (bob.name, bob.is_turn) == ("Bob", True)
    assert bob.url == "http://tmars.test/player?id=g1-b"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [501, 503])
async def test_listing_unavailable_is_hard_stop(status):
    transport = _server(overrides={("/api/games", "srv"): httpx.Response(status)})

    with pytest.raises(HardStopPollError) as excinfo:
        await _source(transport).fetch_games()
    assert excinfo.value.status == status


@pytest.mark.asyncio
async def test_hard_stop_on_game_details_fails_whole_poll():
    transport = _server(
        games=["g1", "g2"],
        details={"g1": _detail("g1")},
        waiting={"spec-g1": []},
        overrides={("/api/game", "g2"): httpx.Response(503)},
    )

    with pytest.raises(HardStopPollError):
        await _source(transport).fetch_games()


@pytest.mark.asyncio
async def test_server_error_on_listing_is_transient():
    transport = _server(overrides={("/api/games", "srv"): httpx.Response(500)})

    with pytest.raises(TransientPollError):
        await _source(transport).fetch_games()


@pytest.mark.asyncio
async def test_non_json_listing_is_transient():
    transport = _server(
        overrides={("/api/games", "srv"): httpx.Response(200, text="<html>maintenance</html>")}
    )

    with pytest.raises(TransientPollError):
        await _source(transport).fetch_games()


@pytest.mark.asyncio
async def test_connection_failure_is_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransientPollError):
        await _source(httpx.MockTransport(handler)).fetch_games()


@pytest.mark.asyncio
async def test_single_failing_game_is_marked_unavailable():
    transport = _server(
        games=["g1", "g2"],
        details={"g1": _detail("g1")},
        waiting={"spec-g1": ["red"]},
    )

    snapshot = await _source(transport).fetch_games()

    assert list(snapshot.games) == ["g1"]
    assert snapshot.unavailable == frozenset({"g2"})
    assert not snapshot.complete


@pytest.mark.asyncio
async def test_failing_waiting_list_marks_game_unavailable():
    transport = _server(
        games=["g1"],
        details={"g1": _detail("g1")},
        overrides={("/api/waitingfor", "spec-g1"): httpx.Response(500)},
    )

    snapshot = await _source(transport).fetch_games()

    assert snapshot.games == {}
    assert snapshot.unavailable == frozenset({"g1"})


@pytest.mark.asyncio
async def test_cosmetic_defects_are_tolerated():
    players = [
        {"id": "g1-a", "name": "Alice"},
        {"name": "NoId"},
        {"id": "g1-b", "name": "Bob", "color": "blue"},
    ]
    transport = _server(
        games=["g1"],
        details={"g1": _detail("g1", phase="someNewPhase", players=players)},
        waiting={"spec-g1": ["blue"]},
    )

    snapshot = await _source(transport).fetch_games()

    game = snapshot.games["g1"]
    assert game.phase is Phase.UNKNOWN
    assert [p.name for p in game.players] == ["Alice", "Bob"]
    assert game.players[0].color == ""
    assert not game.players[0].is_turn
    assert game.players[1].is_turn


@pytest.mark.asyncio
async def test_empty_server_gives_empty_complete_snapshot():
    snapshot = await _source(_server()).fetch_games()

    assert snapshot.games == {}
    assert snapshot.complete


def test_player_url_strips_trailing_slash():
    source = TMarsSource("http://tmars.test/", "srv")
    assert source.player_url("p1") == "http://tmars.test/player?id=p1"


def test_snapshot_games_are_read_only():
    games = {"g1": make_game("g1", {"Alice": True})}
    snapshot = Snapshot(games=games)

    games["g2"] = make_game("g2", {"Bob": True})
    assert list(snapshot.games) == ["g1"]
    with pytest.raises(TypeError):
        snapshot.games["g3"] = make_game("g3", {})

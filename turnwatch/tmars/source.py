"""Game state source -- the Terraforming Mars HTTP API behind a small contract.

``fetch_games()`` either returns a full ``Snapshot`` or raises one of the two
polling error classes:

* ``HardStopPollError`` when the server answers 501/503 on any call.
* ``TransientPollError`` for timeouts, connection failures, other HTTP errors
  and payloads that cannot be parsed at all.

Problems limited to one game (its details or waiting list failed) do not fail
the poll; that game is reported in ``Snapshot.unavailable`` instead.  Missing
cosmetic fields are filled with defaults.
"""
import asyncio
import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError as PydanticValidationError

from turnwatch.errors import HardStopPollError, TransientPollError
from turnwatch.tmars.responses import GameDetail, GameRef, PlayerDetail, WaitingForResponse
from turnwatch.tmars.structs import Game, Phase, Player, Snapshot

log = logging.getLogger(__name__)

HARD_STOP_STATUSES = frozenset({501, 503})


class GameStateSource(Protocol):
    async def fetch_games(self) -> Snapshot: ...


class TMarsSource:
    def __init__(
        self,
        base_url: str,
        server_id: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.server_id = server_id
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))

    async def aclose(self) -> None:
        await self._client.aclose()

    def player_url(self, player_id: str) -> str:
        return f"{self.base_url}/player?id={player_id}"

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    async def fetch_games(self) -> Snapshot:
        game_ids = await self._list_games()

        results = await asyncio.gather(
            *(self._fetch_game(game_id) for game_id in game_ids),
            return_exceptions=True,
        )

        games: dict[str, Game] = {}
        unavailable: set[str] = set()
        for game_id, result in zip(game_ids, results):
            if isinstance(result, HardStopPollError):
                raise result
            if isinstance(result, BaseException):
                log.warning("Could not refresh game %s: %s", game_id, result)
                unavailable.add(game_id)
                continue
            if result is None:
                continue
            games[game_id] = result

        log.info(
            "Fetched %d games from %s (%d unavailable)",
            len(games), self.base_url, len(unavailable),
        )
        return Snapshot(games=games, unavailable=frozenset(unavailable))

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def _get_json(self, path: str, params: dict[str, str]) -> Any:
        url = f"{self.base_url}{path}"
        log.debug("Request %s %s", url, params)
        try:
            resp = await self._client.get(url, params=params)
        except httpx.TimeoutException as exc:
            raise TransientPollError(f"Timed out requesting {path}") from exc
        except httpx.HTTPError as exc:
            raise TransientPollError(f"Error requesting {path}: {exc}") from exc

        if resp.status_code in HARD_STOP_STATUSES:
            raise HardStopPollError(
                f"{path} answered HTTP {resp.status_code}", status=resp.status_code
            )
        if resp.is_error:
            raise TransientPollError(f"{path} answered HTTP {resp.status_code}")

        try:
            return resp.json()
        except ValueError as exc:
            raise TransientPollError(f"{path} returned a non-JSON body") from exc

    async def _list_games(self) -> list[str]:
        data = await self._get_json("/api/games", {"serverId": self.server_id})
        if not isinstance(data, list):
            raise TransientPollError("/api/games did not return a list")

        game_ids = []
        for entry in data:
            try:
                game_ids.append(GameRef.model_validate(entry).game_id)
            except PydanticValidationError:
                log.warning("Ignoring malformed game entry %r", entry)
        return game_ids

    async def _fetch_game(self, game_id: str) -> Game | None:
        data = await self._get_json("/api/game", {"id": game_id})
        try:
            detail = GameDetail.model_validate(data)
        except PydanticValidationError as exc:
            raise TransientPollError(f"Malformed details for game {game_id}") from exc

        phase = Phase.parse(detail.phase)
        if phase is Phase.END:
            log.debug("Ignore game %s, phase=end", game_id)
            return None
        if not detail.spectator_id:
            raise TransientPollError(f"Game {game_id} has no spectator id")

        waiting_colors = await self._waiting_for(detail.spectator_id)
        return Game(
            id=game_id,
            phase=phase,
            spectator_id=detail.spectator_id,
            players=self._convert_players(game_id, detail.players, waiting_colors),
        )

    async def _waiting_for(self, spectator_id: str) -> set[str]:
        data = await self._get_json("/api/waitingfor", {"id": spectator_id})
        try:
            return set(WaitingForResponse.model_validate(data).waiting_for)
        except PydanticValidationError as exc:
            raise TransientPollError(
                f"Malformed waiting list for spectator {spectator_id}"
            ) from exc

    def _convert_players(
        self, game_id: str, raw_players: list[Any], waiting_colors: set[str]
    ) -> tuple[Player, ...]:
        players = []
        for raw in raw_players:
            try:
                detail = PlayerDetail.model_validate(raw)
            except PydanticValidationError:
                log.warning("Ignoring malformed player %r in game %s", raw, game_id)
                continue
            if not detail.color:
                log.debug("Player %s in game %s has no color", detail.name, game_id)
            players.append(
                Player(
                    id=detail.id,
                    name=detail.name,
                    color=detail.color,
                    url=self.player_url(detail.id),
                    is_turn=bool(detail.color) and detail.color in waiting_colors,
                )
            )
        return tuple(players)

"""Game snapshot types, rebuilt from scratch on every poll."""
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

log = logging.getLogger(__name__)


class Phase(str, Enum):
    INITIAL_DRAFTING = "initialDrafting"
    PRELUDES = "preludes"
    CEOS = "ceos"
    RESEARCH = "research"
    DRAFTING = "drafting"
    ACTION = "action"
    PRODUCTION = "production"
    SOLAR = "solar"
    INTERGENERATION = "intergeneration"
    END = "end"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> "Phase":
        try:
            return cls(value)
        except ValueError:
            log.warning("Unknown phase string: %r", value)
            return cls.UNKNOWN


@dataclass(frozen=True)
class Player:
    id: str
    name: str
    color: str = ""
    url: str = ""
    is_turn: bool = False


@dataclass(frozen=True)
class Game:
    id: str
    phase: Phase
    spectator_id: str
    players: tuple[Player, ...] = ()

    def find_player(self, name: str) -> Player | None:
        """First player whose name matches exactly (case-sensitive)."""
        for player in self.players:
            if player.name == name:
                return player
        return None

    @property
    def waited_players(self) -> list[Player]:
        return [p for p in self.players if p.is_turn]


@dataclass(frozen=True)
class Snapshot:
    """Result of one successful poll.

    ``unavailable`` holds games the server listed but whose details could not
    be fetched this time; their turn state is unknown, not "nobody's turn".
    """

    games: Mapping[str, Game] = field(default_factory=dict)
    unavailable: frozenset[str] = frozenset()

    def __post_init__(self):
        object.__setattr__(self, "games", MappingProxyType(dict(self.games)))
        object.__setattr__(self, "unavailable", frozenset(self.unavailable))

    @property
    def complete(self) -> bool:
        return not self.unavailable

    def sorted_games(self) -> list[Game]:
        return [self.games[g] for g in sorted(self.games)]

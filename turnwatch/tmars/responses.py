"""Payloads returned by the Terraforming Mars server API."""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Response(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class GameRef(_Response):
    game_id: str


class PlayerDetail(_Response):
    id: str
    name: str
    color: str = ""


class GameDetail(_Response):
    id: str
    phase: str = ""
    spectator_id: str = ""
    # Validated one by one so a single broken entry only drops that player.
    players: list[Any] = Field(default_factory=list)


class WaitingForResponse(_Response):
    waiting_for: list[str] = Field(default_factory=list)

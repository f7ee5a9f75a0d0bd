from dataclasses import dataclass
from datetime import timedelta

# (room_id, game_id)
AlertKey = tuple[str, str]


@dataclass(frozen=True)
class Subscription:
    """A room's request to be pinged when a player's turn has lasted ``delay_minutes``."""

    room_id: str
    game_id: str
    user_id: str
    player_name: str
    delay_minutes: int

    @property
    def key(self) -> AlertKey:
        return (self.room_id, self.game_id)

    @property
    def delay(self) -> timedelta:
        return timedelta(minutes=self.delay_minutes)

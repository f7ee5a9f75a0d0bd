"""Notification sink contract and the turn alert payload."""
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from turnwatch.game.scheduler import FireEvent


class NotificationSink(Protocol):
    async def send(self, room_id: str, message: dict) -> None:
        """Deliver ``message`` to ``room_id``; raise ``DeliveryError`` on failure."""


def format_player_turn(user_id: str, player_url: str) -> str:
    return f"{user_id}: it's your turn to play: {player_url}"


def build_turn_message(event: "FireEvent") -> dict:
    return {
        "type": "turn_alert",
        "room_id": event.room_id,
        "game_id": event.game_id,
        "user_id": event.user_id,
        "player_name": event.player_name,
        "player_url": event.player_url,
        "text": format_player_turn(event.user_id, event.player_url),
    }

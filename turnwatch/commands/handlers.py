"""Command handlers: one function per ``Intent`` variant."""
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from turnwatch.alerts.store import AlertStore
from turnwatch.commands.parser import (
    Help,
    Intent,
    ListAlerts,
    ListGames,
    Register,
    Unregister,
    parse,
)
from turnwatch.errors import NotFoundError, ValidationError
from turnwatch.tmars.structs import Snapshot

log = logging.getLogger(__name__)


@dataclass
class CommandContext:
    room_id: str
    user_id: str
    store: AlertStore
    snapshot: Snapshot | None
    prefix: str = "!turnwatch"


def help_text(prefix: str) -> str:
    return "\n".join([
        "Commands:",
        f"- `{prefix} games`: list all the ongoing games",
        f"- `{prefix} alerts`: list the alerts registered in this room",
        f"- `{prefix} register <game_id> <player_name> <delay_in_minutes>`: register a new alert",
        f"- `{prefix} unregister <game_id>`: unregister an alert",
        f"- `{prefix} help`: show this help message",
        "",
        "An alert mentions you once the player's turn has lasted the given delay.",
    ])


async def handle_help(intent: Help, ctx: CommandContext) -> str:
    return help_text(ctx.prefix)


async def handle_games(intent: ListGames, ctx: CommandContext) -> str:
    if ctx.snapshot is None or not ctx.snapshot.games:
        return "No ongoing games found."
    lines = ["Games:"]
    for game in ctx.snapshot.sorted_games():
        players = ", ".join(
            f"{p.name} (waiting)" if p.is_turn else p.name for p in game.players
        )
        lines.append(f"- {game.id} ({game.phase.value}), players: {players}")
    return "\n".join(lines)


async def handle_alerts(intent: ListAlerts, ctx: CommandContext) -> str:
    alerts = ctx.store.list_by_room(ctx.room_id)
    if not alerts:
        return "No alerts found."
    lines = ["Registered alerts:"]
    for alert in alerts:
        lines.append(f"- {alert.game_id}: {alert.player_name} after {alert.delay_minutes} min")
    return "\n".join(lines)


async def handle_register(intent: Register, ctx: CommandContext) -> str:
    ctx.store.validate_delay(intent.delay_minutes)

    if ctx.snapshot is None:
        raise ValidationError(
            "Games are not known yet, try again in a few minutes.", code="NO_SNAPSHOT"
        )
    game = ctx.snapshot.games.get(intent.game_id)
    if game is None and intent.game_id in ctx.snapshot.unavailable:
        raise ValidationError(
            f"Game with id '{intent.game_id}' could not be refreshed, try again in a few minutes.",
            code="GAME_UNAVAILABLE",
        )
    if game is None:
        raise ValidationError(
            f"Game with id '{intent.game_id}' not found.", code="GAME_NOT_FOUND"
        )
    if game.find_player(intent.player_name) is None:
        raise ValidationError(
            f"Player '{intent.player_name}' not found in game with id '{intent.game_id}'.",
            code="PLAYER_NOT_FOUND",
        )

    await ctx.store.register(
        room_id=ctx.room_id,
        game_id=intent.game_id,
        user_id=ctx.user_id,
        player_name=intent.player_name,
        delay_minutes=intent.delay_minutes,
    )
    return "You have been registered successfully."


async def handle_unregister(intent: Unregister, ctx: CommandContext) -> str:
    await ctx.store.unregister(ctx.room_id, intent.game_id)
    return "You have been unregistered successfully."


HANDLERS: dict[type, Callable[..., Awaitable[str]]] = {
    Help: handle_help,
    ListGames: handle_games,
    ListAlerts: handle_alerts,
    Register: handle_register,
    Unregister: handle_unregister,
}


async def handle_intent(intent: Intent, ctx: CommandContext) -> str:
    return await HANDLERS[type(intent)](intent, ctx)


async def handle_message(text: str, ctx: CommandContext) -> str | None:
    """Parse and run one chat line. ``None`` means the line was not for the bot.

    User mistakes come back as reply text; ``PersistenceError`` propagates.
    """
    try:
        intent = parse(text, ctx.prefix)
        if intent is None:
            return None
        log.debug("Handling %s from %s in room %s", intent, ctx.user_id, ctx.room_id)
        return await handle_intent(intent, ctx)
    except (ValidationError, NotFoundError) as exc:
        log.debug("Command rejected in room %s: %s", ctx.room_id, exc.message)
        return exc.message

"""Chat command tokenizer and parser.

``parse`` is pure: it turns one chat line into one of the ``Intent`` variants,
returns ``None`` for messages that are not addressed to the bot, and raises
``ValidationError`` (with the usage line) for malformed commands.
"""
import shlex
from dataclasses import dataclass

from turnwatch.errors import ValidationError


@dataclass(frozen=True)
class Help:
    pass


@dataclass(frozen=True)
class ListGames:
    pass


@dataclass(frozen=True)
class ListAlerts:
    pass


@dataclass(frozen=True)
class Register:
    game_id: str
    player_name: str
    delay_minutes: int


@dataclass(frozen=True)
class Unregister:
    game_id: str


Intent = Help | ListGames | ListAlerts | Register | Unregister


def tokenize(text):
    """Split input into tokens, respecting quoted strings."""
    try:
        return shlex.split(text)
    except ValueError:
        # Unmatched quotes -- fall back to simple split
        return text.split()


def register_usage(prefix: str) -> str:
    return f"Invalid register command. Usage: `{prefix} register <game_id> <player_name> <delay_in_minutes>`"


def unregister_usage(prefix: str) -> str:
    return f"Invalid unregister command. Usage: `{prefix} unregister <game_id>`"


def parse(text: str, prefix: str = "!turnwatch") -> Intent | None:
    tokens = tokenize(text.strip())
    if not tokens or tokens[0].lower() != prefix.lower():
        return None

    if len(tokens) == 1:
        return Help()

    name, args = tokens[1].lower(), tokens[2:]

    if name == "help":
        return Help()
    if name == "games":
        return ListGames()
    if name == "alerts":
        return ListAlerts()
    if name == "register":
        return _parse_register(args, prefix)
    if name == "unregister":
        if len(args) != 1:
            raise ValidationError(unregister_usage(prefix), code="INVALID_UNREGISTER")
        return Unregister(game_id=args[0])

    raise ValidationError(
        f"Unknown command. Type `{prefix} help` for more information.",
        code="UNKNOWN_COMMAND",
    )


def _parse_register(args: list[str], prefix: str) -> Register:
    if len(args) < 3:
        raise ValidationError(register_usage(prefix), code="INVALID_REGISTER")
    try:
        delay = int(args[-1])
    except ValueError:
        raise ValidationError(register_usage(prefix), code="INVALID_REGISTER") from None
    # Unquoted names with spaces end up split over several tokens.
    player_name = " ".join(args[1:-1])
    return Register(game_id=args[0], player_name=player_name, delay_minutes=delay)

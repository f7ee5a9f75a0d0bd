from turnwatch.commands.handlers import CommandContext, handle_intent, handle_message
from turnwatch.commands.parser import Help, Intent, ListAlerts, ListGames, Register, Unregister, parse

__all__ = [
    "CommandContext",
    "Help",
    "Intent",
    "ListAlerts",
    "ListGames",
    "Register",
    "Unregister",
    "handle_intent",
    "handle_message",
    "parse",
]

"""Error taxonomy shared by the store, the polling engine and the HTTP layer."""


class TurnwatchError(Exception):
    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigError(TurnwatchError):
    def __init__(self, message: str = "Invalid configuration", details: dict | None = None):
        super().__init__("CONFIG_ERROR", message, details)


# -- User-visible ------------------------------------------------------------

class ValidationError(TurnwatchError):
    def __init__(self, message: str = "Invalid input", code: str = "VALIDATION_ERROR", details: dict | None = None):
        super().__init__(code, message, details)


class NotFoundError(TurnwatchError):
    def __init__(self, message: str = "Resource not found", code: str = "NOT_FOUND", details: dict | None = None):
        super().__init__(code, message, details)


# -- Polling -----------------------------------------------------------------

class PollError(TurnwatchError):
    """Base for failures of a single poll. Never fatal to the process."""


class TransientPollError(PollError):
    def __init__(self, message: str = "Transient polling failure", details: dict | None = None):
        super().__init__("TRANSIENT_POLL_ERROR", message, details)


class HardStopPollError(PollError):
    """The game server explicitly reported itself unavailable."""

    def __init__(self, message: str = "Game server unavailable", status: int | None = None):
        self.status = status
        super().__init__("HARD_STOP_POLL_ERROR", message, {"status": status})


# -- Storage / delivery ------------------------------------------------------

class PersistenceError(TurnwatchError):
    def __init__(self, message: str = "Failed to persist alerts", details: dict | None = None):
        super().__init__("PERSISTENCE_ERROR", message, details)


class DeliveryError(TurnwatchError):
    def __init__(self, message: str = "Failed to deliver notification", room_id: str | None = None):
        self.room_id = room_id
        super().__init__("DELIVERY_ERROR", message, {"room_id": room_id})

import logging
import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import Field, ValidationError as PydanticValidationError, model_validator
from pydantic_settings import BaseSettings

from turnwatch.errors import ConfigError

log = logging.getLogger(__name__)

# One week, the longest delay a subscription may ever use.
MAX_DELAY_MINUTES = 7 * 24 * 60

CONFIG_PATH_ENV = "TURNWATCH_CONFIG"


class Settings(BaseSettings):
    # Terraforming Mars server
    TMARS_URL: str = "http://localhost:8080"
    TMARS_SERVER_ID: str = ""

    # Polling engine (seconds)
    POLLING_INTERVAL: float = Field(120.0, ge=5, le=86400)
    POLLING_HARD_STOP_COOLDOWN: float = Field(120.0, ge=1, le=86400)
    POLLING_FETCH_TIMEOUT: float = Field(30.0, gt=0, le=600)

    # Notification delivery (seconds)
    NOTIFY_SEND_TIMEOUT: float = Field(10.0, gt=0, le=600)

    # Alert subscriptions
    ALERTS_MIN_DELAY_MINUTES: int = Field(1, ge=1, le=MAX_DELAY_MINUTES)
    ALERTS_MAX_DELAY_MINUTES: int = Field(MAX_DELAY_MINUTES, ge=1, le=MAX_DELAY_MINUTES)
    ALERTS_PRUNE_FINISHED_GAMES: bool = True

    DATABASE_URL: str = "sqlite+aiosqlite:///./turnwatch.db"
    COMMAND_PREFIX: str = "!turnwatch"
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    model_config = {"env_prefix": "TURNWATCH_", "extra": "forbid"}

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        # Environment beats the YAML file, which arrives as init kwargs.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> "Settings":
        if self.ALERTS_MIN_DELAY_MINUTES > self.ALERTS_MAX_DELAY_MINUTES:
            raise ValueError(
                "ALERTS_MIN_DELAY_MINUTES must not exceed ALERTS_MAX_DELAY_MINUTES"
            )
        return self


def _flatten(data: dict) -> dict:
    """Turn ``{"tmars": {"url": x}}`` into ``{"TMARS_URL": x}``."""
    flat = {}
    for key, value in data.items():
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                flat[f"{key}_{sub_key}".upper()] = sub_value
        else:
            flat[str(key).upper()] = value
    return flat


def read_config_file(path: str | Path) -> dict:
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse config file {path}: {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at top level")
    return _flatten(raw)


def load_settings(path: str | Path | None = None) -> Settings:
    """Build settings from an optional YAML file plus the environment.

    Raises ``ConfigError`` naming every offending field.
    """
    values = read_config_file(path) if path else {}
    try:
        settings = Settings(**values)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}") from exc
    log.debug("Loaded settings from %s", path or "environment")
    return settings


@lru_cache
def get_settings() -> Settings:
    return load_settings(os.environ.get(CONFIG_PATH_ENV))


settings = get_settings()

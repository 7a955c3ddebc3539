"""Environment-based configuration for the dashboard."""

import os
import sys
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

DEFAULT_LOG_CAPACITY = 256


def default_settings_path() -> Path:
    """Return the platform location of the persisted UI preferences."""
    if sys.platform == "win32":
        program_data = os.environ.get("ProgramData", "").strip() or r"C:\ProgramData"
        return Path(program_data) / "TunGo" / "tui.json"
    return Path("/etc/tungo/tui.json")


class Settings(BaseSettings):
    """Dashboard configuration.

    All settings can be overridden via environment variables with
    TUNGO_UI_ prefix. For example:
        TUNGO_UI_SETTINGS_PATH=/tmp/tui.json
        TUNGO_UI_LOG_CAPACITY=1024
    """

    # Preferences file
    settings_path: Path = default_settings_path()

    # Log ring capacity in lines
    log_capacity: int = DEFAULT_LOG_CAPACITY

    # Periodic waits (seconds)
    tick_interval: float = 1.0
    log_poll_interval: float = 0.5

    # Buffered session events
    event_buffer: int = 4

    model_config = {"env_prefix": "TUNGO_UI_"}

    @field_validator("log_capacity")
    @classmethod
    def _positive_capacity(cls, value: int) -> int:
        if value <= 0:
            return DEFAULT_LOG_CAPACITY
        return value

    @field_validator("event_buffer")
    @classmethod
    def _positive_buffer(cls, value: int) -> int:
        return max(1, value)


settings = Settings()

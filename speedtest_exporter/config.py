import os
from dataclasses import dataclass
from typing import Mapping, Union

from .errors import ConfigError
from .selector import CLOSEST

ServerPreference = Union[str, int]

_TRUE = {"1", "t", "true", "y", "yes", "on"}
_FALSE = {"0", "f", "false", "n", "no", "off"}

def int_env(name: str, default: int, env: Mapping[str, str] | None = None) -> int:
    """
    Read an env var and convert to int.
    Falls back to `default` if var is unset, empty or its parsing fails.
    """
    env = os.environ if env is None else env
    raw = env.get(name, "")
    if raw == "":
        return default
    try:
        return int(raw)
    except (ValueError, TypeError):
        return default

def bool_env(name: str, default: bool, env: Mapping[str, str] | None = None) -> bool:
    env = os.environ if env is None else env
    raw = env.get(name, "").strip().lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    return default

def str_env(name: str, default: str, env: Mapping[str, str] | None = None) -> str:
    env = os.environ if env is None else env
    return env.get(name) or default

@dataclass(frozen=True)
class Settings:
    listen_port: int = 7777
    bind_host: str = "0.0.0.0"
    server_id: int = -1  # -1 selects the closest server
    server_fallback: bool = False
    refresh_interval: int = 3600  # seconds
    log_level: str = "INFO"

    @property
    def server_preference(self) -> ServerPreference:
        return CLOSEST if self.server_id == -1 else str(self.server_id)

    def validate(self) -> "Settings":
        if self.refresh_interval <= 0:
            raise ConfigError("refresh_interval must be greater than 0")
        if not 0 < self.listen_port < 65536:
            raise ConfigError(f"listen_port {self.listen_port} is out of range")
        return self

def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Read settings from the environment; raises ConfigError on invalid values."""
    return Settings(
        listen_port=int_env("LISTEN_PORT", 7777, env),
        bind_host=str_env("BIND_HOST", "0.0.0.0", env),
        server_id=int_env("SERVER_ID", -1, env),
        server_fallback=bool_env("SERVER_FALLBACK", False, env),
        refresh_interval=int_env("REFRESH_INTERVAL", 3600, env),
        log_level=str_env("LOG_LEVEL", "INFO", env).upper(),
    ).validate()

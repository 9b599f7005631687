"""
Configuration and environment loading for uciplay.

- Loads settings.yml (YAML) if present; falls back to environment variables, then defaults.
- .env is loaded first so UCIPLAY_* variables can live next to the config file.
- load_settings() is called once at startup; the result is an immutable Settings.

The engine path has no safe default and must be supplied.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

import yaml
from dotenv import load_dotenv

from .errors import StartupFault

log = logging.getLogger("config")

DEFAULT_CONFIG_PATH = "settings.yml"
DEFAULT_SERVER_ADDR = ":8080"
DEFAULT_MOVE_TIME_MS = 10
DEFAULT_ENGINE_TIMEOUT_S = 10.0
DEFAULT_STATIC_DIR = "web"
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class Settings:
    engine_path: str
    server_addr: str = DEFAULT_SERVER_ADDR
    # Per-move thinking budget handed to the engine
    move_time_ms: int = DEFAULT_MOVE_TIME_MS
    # Engine-specific UCI options applied once after the handshake
    uci_options: dict[str, Any] = field(default_factory=dict)
    engine_timeout_s: float = DEFAULT_ENGINE_TIMEOUT_S
    static_dir: str = DEFAULT_STATIC_DIR
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def host(self) -> str:
        return parse_server_addr(self.server_addr)[0]

    @property
    def port(self) -> int:
        return parse_server_addr(self.server_addr)[1]


def parse_server_addr(addr: str) -> tuple[str, int]:
    """Split 'host:port' (host optional, ':8080' listens everywhere)."""
    host, sep, port = str(addr).strip().rpartition(":")
    if not sep:
        raise StartupFault(f"server_addr must look like 'host:port' or ':port', got '{addr}'")
    try:
        port_num = int(port)
    except ValueError:
        raise StartupFault(f"server_addr has a non-numeric port: '{addr}'")
    if not 0 < port_num < 65536:
        raise StartupFault(f"server_addr port out of range: '{addr}'")
    return host or "0.0.0.0", port_num


def _load_yaml(path: str) -> dict:
    if not os.path.isfile(path):
        log.warning("Config file %s not found, using environment and defaults", path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise StartupFault(f"Failed reading config file {path}: {e}")
    if not isinstance(data, dict):
        raise StartupFault(f"Config file {path} must contain a mapping at the top level")
    return data


def _get(cfg: Mapping[str, Any], key: str, env_name: Optional[str], default: Any,
         environ: Mapping[str, str], cast: Callable[[Any], Any] | None = None) -> Any:
    # YAML takes precedence over the environment
    if key in cfg and cfg[key] is not None:
        val = cfg[key]
    elif env_name and environ.get(env_name) is not None:
        val = environ[env_name]
    else:
        return default
    if cast is None:
        return val
    try:
        return cast(val)
    except (TypeError, ValueError):
        raise StartupFault(f"Invalid value for '{key}': {val!r}")


def load_settings(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None,
                  overrides: Optional[Mapping[str, Any]] = None) -> Settings:
    """Read configuration once. Precedence: overrides (CLI) > YAML > environment > defaults."""
    if environ is None:
        load_dotenv()
        environ = os.environ
    cfg = dict(_load_yaml(path or environ.get("UCIPLAY_CONFIG") or DEFAULT_CONFIG_PATH))
    for key, value in (overrides or {}).items():
        if value is not None:
            cfg[key] = value

    engine_path = _get(cfg, "engine_path", "UCIPLAY_ENGINE_PATH", None, environ, cast=str)
    if not engine_path or not engine_path.strip():
        raise StartupFault(
            "engine_path is not configured. Set 'engine_path' in settings.yml, "
            "UCIPLAY_ENGINE_PATH in the environment, or pass --engine-path."
        )

    uci_options = cfg.get("uci_options") or {}
    if not isinstance(uci_options, dict):
        raise StartupFault("uci_options must be a mapping of option name to value")

    move_time_ms = _get(cfg, "move_time", "UCIPLAY_MOVE_TIME", DEFAULT_MOVE_TIME_MS, environ, cast=int)
    if move_time_ms <= 0:
        raise StartupFault(f"move_time must be positive, got {move_time_ms}")

    settings = Settings(
        engine_path=engine_path.strip(),
        server_addr=_get(cfg, "server_addr", "UCIPLAY_SERVER_ADDR", DEFAULT_SERVER_ADDR, environ, cast=str),
        move_time_ms=move_time_ms,
        uci_options={str(k): v for k, v in uci_options.items()},
        engine_timeout_s=_get(cfg, "engine_timeout", "UCIPLAY_ENGINE_TIMEOUT", DEFAULT_ENGINE_TIMEOUT_S, environ, cast=float),
        static_dir=_get(cfg, "static_dir", "UCIPLAY_STATIC_DIR", DEFAULT_STATIC_DIR, environ, cast=str),
        log_level=_get(cfg, "log_level", "UCIPLAY_LOG_LEVEL", DEFAULT_LOG_LEVEL, environ, cast=str).upper(),
    )
    # validate the address up front so a typo fails at startup
    parse_server_addr(settings.server_addr)
    return settings


__all__ = ["Settings", "load_settings", "parse_server_addr"]

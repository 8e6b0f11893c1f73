"""Fieldwork configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: FIELDWORK_<SECTION>_<KEY> (uppercase).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    env: str = "dev"  # "dev" or "prod"


@dataclass
class StoreConfig:
    backend: str = "memory"  # "memory" or "http"
    base_url: str = "http://localhost:3000/api"
    timeout_seconds: float = 30.0
    token: str = ""
    seed_file: str = ""  # YAML list of activity records preloaded into the memory backend


@dataclass
class CacheConfig:
    ttl_seconds: float = 30.0


@dataclass
class SessionConfig:
    ranger_id: str = ""  # when set, the session is resumed at start-up


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"
    file: str = ""


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS = ("server", "store", "cache", "session", "logging")


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "FIELDWORK_SERVER_HOST": lambda v: setattr(config.server, "host", v),
        "FIELDWORK_SERVER_PORT": lambda v: setattr(config.server, "port", int(v)),
        "FIELDWORK_SERVER_ENV": lambda v: setattr(config.server, "env", v),
        "FIELDWORK_STORE_BACKEND": lambda v: setattr(config.store, "backend", v),
        "FIELDWORK_STORE_BASE_URL": lambda v: setattr(config.store, "base_url", v),
        "FIELDWORK_STORE_TIMEOUT_SECONDS": lambda v: setattr(config.store, "timeout_seconds", float(v)),
        "FIELDWORK_STORE_TOKEN": lambda v: setattr(config.store, "token", v),
        "FIELDWORK_STORE_SEED_FILE": lambda v: setattr(config.store, "seed_file", v),
        "FIELDWORK_CACHE_TTL_SECONDS": lambda v: setattr(config.cache, "ttl_seconds", float(v)),
        "FIELDWORK_SESSION_RANGER_ID": lambda v: setattr(config.session, "ranger_id", v),
        "FIELDWORK_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "FIELDWORK_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
        "FIELDWORK_LOG_FILE": lambda v: setattr(config.logging, "file", v),
    }
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            setter(val)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    if config_path is None:
        config_path = Path(os.environ.get("FIELDWORK_CONFIG", "config.yaml"))
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for section in _SECTIONS:
            target = getattr(config, section)
            for k, v in (raw.get(section) or {}).items():
                if hasattr(target, k):
                    setattr(target, k, v)

    # Environment overrides always win
    _apply_env_overrides(config)
    return config

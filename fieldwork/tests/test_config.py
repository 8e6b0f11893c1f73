"""Tests for configuration loading."""

from __future__ import annotations

import structlog

from fieldwork.config import AppConfig, load_config
from fieldwork.main import _setup_logging, build_store, load_seed_activities
from fieldwork.store.base import StaticTokenProvider
from fieldwork.store.http_store import HttpActivityStore
from fieldwork.store.memory_store import InMemoryActivityStore


def test_defaults_without_file(tmp_path):
    config = load_config(tmp_path / "missing.yaml")
    assert config.store.backend == "memory"
    assert config.cache.ttl_seconds == 30.0
    assert config.store.timeout_seconds == 30.0


def test_yaml_sections(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "store:\n"
        "  backend: http\n"
        "  base_url: https://store.example.org/api\n"
        "cache:\n"
        "  ttl_seconds: 10\n"
        "session:\n"
        "  ranger_id: '7'\n"
        "unknown:\n"
        "  key: 1\n"
    )
    config = load_config(path)
    assert config.store.backend == "http"
    assert config.store.base_url == "https://store.example.org/api"
    assert config.cache.ttl_seconds == 10
    assert config.session.ranger_id == "7"


def test_env_overrides_win(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("server:\n  port: 9000\n")
    monkeypatch.setenv("FIELDWORK_SERVER_PORT", "9100")
    monkeypatch.setenv("FIELDWORK_CACHE_TTL_SECONDS", "5")
    monkeypatch.setenv("FIELDWORK_LOG_FORMAT", "json")

    config = load_config(path)

    assert config.server.port == 9100
    assert config.cache.ttl_seconds == 5.0
    assert config.logging.format == "json"


def test_build_store_picks_backend():
    config = AppConfig()
    tokens = StaticTokenProvider()
    assert isinstance(build_store(config, tokens), InMemoryActivityStore)
    config.store.backend = "http"
    assert isinstance(build_store(config, tokens), HttpActivityStore)


def test_seed_file_loads_activities(tmp_path):
    path = tmp_path / "seed.yaml"
    path.write_text(
        "- act_id: 5\n"
        "  tipo: {tp_nombre: Patrullaje de Control y Vigilancia}\n"
        "  estado: {std_nombre: Programada}\n"
        "  usuario: {usr_id: 7}\n"
    )
    activities = load_seed_activities(str(path))
    assert [(a.id, a.ranger_id, a.is_patrol) for a in activities] == [("5", "7", True)]


def test_log_file_handle_is_returned_for_shutdown(tmp_path):
    config = AppConfig()
    config.logging.file = str(tmp_path / "fieldwork.log")

    handle = _setup_logging(config)
    try:
        structlog.get_logger().info("written_to_file")
    finally:
        handle.close()
        structlog.reset_defaults()

    assert handle.closed
    assert "written_to_file" in (tmp_path / "fieldwork.log").read_text()


def test_no_log_file_by_default():
    try:
        assert _setup_logging(AppConfig()) is None
    finally:
        structlog.reset_defaults()

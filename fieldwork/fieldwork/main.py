"""Fieldwork service: main entry point.

This is the only file that knows about concrete implementations.
It wires together the core, store, and API layers.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TextIO

import structlog
import yaml
from fastapi import FastAPI, Request

from fieldwork.api.activities import router as activities_router
from fieldwork.api.findings import router as findings_router
from fieldwork.api.monitoring import VERSION, router as monitoring_router
from fieldwork.api.session import router as session_router
from fieldwork.api.views import error_response
from fieldwork.config import AppConfig, load_config
from fieldwork.core.cache import TTLCache
from fieldwork.core.engine import FieldSessionEngine
from fieldwork.core.errors import FieldworkError
from fieldwork.core.events import EventBus
from fieldwork.core.models import Activity
from fieldwork.core.stats import EngineStats
from fieldwork.store.base import ActivityStore, StaticTokenProvider
from fieldwork.store.codec import parse_activity
from fieldwork.store.http_store import HttpActivityStore
from fieldwork.store.memory_store import InMemoryActivityStore

log = structlog.get_logger()

# Module-level singletons (set during startup)
_engine: FieldSessionEngine | None = None
_cache: TTLCache | None = None
_stats: EngineStats | None = None
_config: AppConfig | None = None
_tokens: StaticTokenProvider | None = None


def get_engine() -> FieldSessionEngine:
    assert _engine is not None, "Service not initialized"
    return _engine


def get_cache() -> TTLCache:
    assert _cache is not None, "Service not initialized"
    return _cache


def get_stats() -> EngineStats:
    assert _stats is not None, "Service not initialized"
    return _stats


def get_config() -> AppConfig:
    assert _config is not None, "Service not initialized"
    return _config


def get_tokens() -> StaticTokenProvider:
    assert _tokens is not None, "Service not initialized"
    return _tokens


def _setup_logging(config: AppConfig) -> TextIO | None:
    """Configure structlog based on the logging config.

    Returns the opened log file, if any, so shutdown can close it.
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    logger_factory = None
    log_file = None
    if config.logging.file:
        log_file = open(config.logging.file, "a")
        logger_factory = structlog.WriteLoggerFactory(file=log_file)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.logging.level.upper()),
        ),
        logger_factory=logger_factory or structlog.PrintLoggerFactory(),
    )
    return log_file


def load_seed_activities(path: str) -> list[Activity]:
    """Read store-shaped activity records from a YAML list."""
    with open(path) as f:
        raw = yaml.safe_load(f) or []
    activities = [parse_activity(record) for record in raw]
    log.info("seed_loaded", path=path, activities=len(activities))
    return activities


def build_store(config: AppConfig, tokens: StaticTokenProvider) -> ActivityStore:
    """Pick the store adapter named by ``store.backend``."""
    if config.store.backend == "http":
        return HttpActivityStore(
            base_url=config.store.base_url,
            tokens=tokens,
            timeout_seconds=config.store.timeout_seconds,
        )
    if config.store.backend == "memory":
        store = InMemoryActivityStore()
        if config.store.seed_file:
            for activity in load_seed_activities(config.store.seed_file):
                store.seed_activity(activity)
        return store
    raise ValueError(f"unknown store backend: {config.store.backend!r}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    global _engine, _cache, _stats, _config, _tokens

    _config = load_config()
    log_file = _setup_logging(_config)

    log.info("service_starting",
             env=_config.server.env,
             store_backend=_config.store.backend,
             cache_ttl_seconds=_config.cache.ttl_seconds)

    # Create components
    _tokens = StaticTokenProvider(_config.store.token)
    store = build_store(_config, _tokens)
    _stats = EngineStats()
    _cache = TTLCache(ttl_seconds=_config.cache.ttl_seconds)
    _engine = FieldSessionEngine(store=store, cache=_cache, stats=_stats, events=EventBus())

    if _config.session.ranger_id:
        result = await _engine.authenticate(_config.session.ranger_id)
        if not result.ok:
            log.warning("startup_resume_failed", kind=result.error_kind,
                        error=result.error.message)

    log.info("service_started",
             host=_config.server.host,
             port=_config.server.port)

    yield

    # Shutdown
    if isinstance(store, HttpActivityStore):
        await store.aclose()
    log.info("service_stopped")
    if log_file is not None:
        log_file.close()


app = FastAPI(
    title="Fieldwork",
    description="Ranger activity lifecycle and field session service",
    version=VERSION,
    lifespan=lifespan,
)


@app.exception_handler(FieldworkError)
async def fieldwork_error_handler(request: Request, exc: FieldworkError):
    return error_response(exc)


app.include_router(activities_router)
app.include_router(session_router)
app.include_router(findings_router)
app.include_router(monitoring_router)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    config = load_config()
    uvicorn.run("fieldwork.main:app", host=config.server.host, port=config.server.port)

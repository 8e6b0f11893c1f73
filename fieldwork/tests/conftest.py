"""Shared test fixtures."""

from __future__ import annotations

import itertools

import pytest
from httpx import ASGITransport, AsyncClient

import fieldwork.main as main_module
from fieldwork.config import AppConfig
from fieldwork.core.cache import TTLCache
from fieldwork.core.engine import FieldSessionEngine
from fieldwork.core.events import EventBus
from fieldwork.core.models import Activity
from fieldwork.core.stats import EngineStats
from fieldwork.store.base import StaticTokenProvider
from fieldwork.store.memory_store import InMemoryActivityStore

RANGER = "7"
PATROL_KIND = "Patrullaje de Control y Vigilancia"
MAINTENANCE_KIND = "Mantenimiento de Área Protegida"


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_activity(activity_id: str = "", kind: str = PATROL_KIND, ranger_id: str = RANGER) -> Activity:
    return Activity(
        id=activity_id,
        code=f"ACT-{activity_id or 'X'}",
        kind=kind,
        description="Recorrido de prueba",
        scheduled_date="2026-10-19",
        ranger_id=ranger_id,
    )


def _timestamps():
    # Distinct, increasing ISO timestamps for deterministic ordering.
    for n in itertools.count():
        yield f"2026-10-19T08:{n // 60:02d}:{n % 60:02d}+00:00"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def now():
    ticks = _timestamps()
    return lambda: next(ticks)


@pytest.fixture
def store(now):
    store = InMemoryActivityStore(now=now)
    store.seed_activity(make_activity("1", PATROL_KIND))
    store.seed_activity(make_activity("2", MAINTENANCE_KIND))
    store.seed_activity(make_activity("3", PATROL_KIND, ranger_id="8"))
    return store


@pytest.fixture
def stats():
    return EngineStats()


@pytest.fixture
def cache(clock):
    return TTLCache(ttl_seconds=30.0, clock=clock)


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def engine(store, cache, stats, events, now):
    return FieldSessionEngine(store=store, cache=cache, stats=stats, events=events, now=now)


@pytest.fixture(autouse=True)
def _init_service(engine, cache, stats):
    """Initialize service singletons for every test, backed by the in-memory store."""
    config = AppConfig()
    config.logging.level = "warning"

    # Patch module-level singletons
    main_module._config = config
    main_module._stats = stats
    main_module._cache = cache
    main_module._engine = engine
    main_module._tokens = StaticTokenProvider("test-token")

    yield

    # Cleanup
    main_module._config = None
    main_module._stats = None
    main_module._cache = None
    main_module._engine = None
    main_module._tokens = None


@pytest.fixture
async def client():
    from fieldwork.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

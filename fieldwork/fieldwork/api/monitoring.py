"""Health check and monitoring endpoints."""

from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(prefix="/api/v1")

VERSION = "0.1.0"


@router.get("/health")
async def health() -> dict:
    """Basic health check."""
    from fieldwork.main import get_config, get_engine, get_stats

    engine = get_engine()
    snapshot = get_stats().snapshot()
    return {
        "status": "session_expired" if engine.halted else "ok",
        "version": VERSION,
        "uptime_seconds": snapshot["uptime_seconds"],
        "store_backend": get_config().store.backend,
        "ranger_id": engine.ranger_id,
        "seconds_since_store_success": snapshot["seconds_since_store_success"],
    }


@router.get("/stats")
async def stats() -> dict:
    """Engine counters plus cache statistics.

    ``failures`` counts rejected operations by error kind; ``cache`` shows
    the TTL, live entries, hits, misses and invalidations.
    """
    from fieldwork.main import get_cache, get_stats

    result = get_stats().snapshot()
    result["cache"] = get_cache().snapshot()
    return result

"""Activity lifecycle endpoints.

Thin FastAPI adapter: parses JSON bodies, calls the engine and maps its
Result to the response envelope.
"""

from __future__ import annotations

from dataclasses import replace

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from fieldwork.api.views import activity_view, read_json, respond, route_point_view
from fieldwork.core.engine import build_evidence, build_finding, build_route_point
from fieldwork.core.errors import ValidationError
from fieldwork.core.models import ACTIVITY_KINDS, Evidence, Finding, RoutePoint, is_patrol_kind

router = APIRouter(prefix="/api/v1")


def _items(body: dict, key: str) -> list[dict]:
    items = body.get(key) or []
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        raise ValidationError(f"'{key}' must be a list of objects")
    return items


def _parse_finding(item: dict, now: str) -> Finding:
    finding = build_finding(
        item.get("title"), item.get("description"), item.get("severity"),
        item.get("lat"), item.get("lng"), item.get("timestamp") or now,
    )
    # An id marks a finding the store already holds.
    return replace(finding, id=str(item["id"])) if item.get("id") else finding


def _parse_evidence(item: dict, now: str) -> Evidence:
    evidence = build_evidence(
        item.get("url"), item.get("description"), item.get("category"),
        item.get("timestamp") or now, item.get("lat"), item.get("lng"),
    )
    return replace(evidence, id=str(item["id"])) if item.get("id") else evidence


def _parse_route_point(item: dict, now: str) -> RoutePoint:
    point = build_route_point(
        item.get("lat"), item.get("lng"), item.get("timestamp") or now, item.get("note"),
    )
    return replace(point, id=str(item["id"])) if item.get("id") else point


@router.get("/activity-kinds")
async def activity_kinds() -> dict:
    """Activity kind catalog. Patrol kinds open a field session on start."""
    return {"ok": True, "value": [{"name": k, "is_patrol": is_patrol_kind(k)} for k in ACTIVITY_KINDS]}


@router.get("/activities")
async def list_activities(ranger_id: str | None = None) -> JSONResponse:
    """Activities assigned to a ranger (defaults to the signed-in ranger)."""
    from fieldwork.main import get_engine

    engine = get_engine()
    ranger = ranger_id or engine.ranger_id
    if not ranger:
        raise ValidationError("ranger_id is required")
    return respond(await engine.list_activities(ranger), activity_view)


@router.post("/activities/{activity_id}/start")
async def start_activity(activity_id: str, request: Request) -> JSONResponse:
    from fieldwork.main import get_engine

    body = await read_json(request)
    result = await get_engine().start(activity_id, body.get("time"), body.get("lat"), body.get("lng"))
    return respond(result, activity_view)


@router.post("/activities/{activity_id}/finish")
async def finish_activity(activity_id: str, request: Request) -> JSONResponse:
    """Complete an activity.

    Accepts ``{time, lat, lng, observations, findings, evidence,
    route_points}``. Items given here are merged with the activity's field
    session (if it has one) into a single finalize call.
    """
    from fieldwork.main import get_engine

    engine = get_engine()
    body = await read_json(request)
    now = engine.now()
    result = await engine.finish(
        activity_id,
        body.get("time"),
        body.get("lat"),
        body.get("lng"),
        observations=str(body.get("observations") or ""),
        findings=[_parse_finding(i, now) for i in _items(body, "findings")],
        evidence=[_parse_evidence(i, now) for i in _items(body, "evidence")],
        route_points=[_parse_route_point(i, now) for i in _items(body, "route_points")],
    )
    return respond(result, activity_view)


@router.get("/activities/{activity_id}/route")
async def route_history(activity_id: str) -> JSONResponse:
    from fieldwork.main import get_engine

    return respond(await get_engine().route_history(activity_id), route_point_view)

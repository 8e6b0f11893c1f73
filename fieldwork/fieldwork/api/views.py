"""JSON views of engine values and the Result -> HTTP response adapter."""

from __future__ import annotations

import json
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from fieldwork.core.engine import SessionSnapshot
from fieldwork.core.errors import FieldworkError, Result, ValidationError
from fieldwork.core.models import (
    Activity,
    Completed,
    Evidence,
    Finding,
    FollowUpEntry,
    InProgress,
    RoutePoint,
    Stamp,
)

# Error kind -> HTTP status
STATUS_BY_KIND = {
    "validation_error": 422,
    "illegal_transition": 409,
    "not_found": 404,
    "timeout": 504,
    "network_error": 502,
    "malformed_record": 502,
    "session_expired": 401,
}


def _stamp_view(stamp: Stamp) -> dict:
    return {"time": stamp.time, "lat": stamp.coordinates.lat, "lng": stamp.coordinates.lng}


def activity_view(activity: Activity) -> dict:
    lc = activity.lifecycle
    view: dict = {
        "id": activity.id,
        "code": activity.code,
        "kind": activity.kind,
        "is_patrol": activity.is_patrol,
        "description": activity.description,
        "scheduled_date": activity.scheduled_date,
        "ranger_id": activity.ranger_id,
        "state": activity.state.value,
        "start": None,
        "end": None,
    }
    if isinstance(lc, (InProgress, Completed)):
        view["start"] = _stamp_view(lc.start)
    if isinstance(lc, Completed):
        view["end"] = _stamp_view(lc.end)
    return view


def route_point_view(point: RoutePoint) -> dict:
    return {
        "id": point.id,
        "lat": point.lat,
        "lng": point.lng,
        "timestamp": point.timestamp,
        "note": point.note,
    }


def follow_up_view(entry: FollowUpEntry) -> dict:
    return {
        "timestamp": entry.timestamp,
        "action": entry.action,
        "actor": entry.actor,
        "notes": entry.notes,
    }


def finding_view(finding: Finding) -> dict:
    return {
        "id": finding.id,
        "title": finding.title,
        "description": finding.description,
        "severity": finding.severity.value,
        "lat": finding.coordinates.lat,
        "lng": finding.coordinates.lng,
        "timestamp": finding.timestamp,
        "activity_id": finding.activity_id,
        "ranger_id": finding.ranger_id,
        "status": finding.status.value,
        "resolved_at": finding.resolved_at,
        "follow_ups": [follow_up_view(f) for f in finding.follow_ups],
    }


def evidence_view(evidence: Evidence) -> dict:
    coords = evidence.coordinates
    return {
        "id": evidence.id,
        "url": evidence.url,
        "description": evidence.description,
        "category": evidence.category.value,
        "timestamp": evidence.timestamp,
        "lat": coords.lat if coords else None,
        "lng": coords.lng if coords else None,
    }


def session_view(snapshot: SessionSnapshot) -> dict:
    return {
        "activity": activity_view(snapshot.activity),
        "buffered": snapshot.buffered,
        "findings": [finding_view(f) for f in snapshot.findings],
        "evidence": [evidence_view(e) for e in snapshot.evidence],
        "route_points": [route_point_view(p) for p in snapshot.route_points],
        "summary": {
            "route_points": len(snapshot.route_points),
            "findings": len(snapshot.findings),
            "pending_evidence": len(snapshot.evidence),
            "distance_km": snapshot.distance_km,
        },
    }


def respond(result: Result, render=None, status_code: int = 200) -> JSONResponse:
    """Turn an engine Result into the API envelope."""
    if not result.ok:
        return JSONResponse(
            status_code=STATUS_BY_KIND.get(result.error_kind, 500),
            content={
                "ok": False,
                "error": {"kind": result.error_kind, "message": result.error.message},
            },
        )
    value: Any = result.value
    if render is not None and value is not None:
        value = [render(v) for v in value] if isinstance(value, list) else render(value)
    return JSONResponse(status_code=status_code, content={"ok": True, "value": value})


async def read_json(request: Request) -> dict:
    """Parse a JSON object body. An empty body reads as ``{}``."""
    body_bytes = await request.body()
    if not body_bytes:
        return {}
    try:
        body = json.loads(body_bytes)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("invalid JSON") from None
    if not isinstance(body, dict):
        raise ValidationError("request body must be a JSON object")
    return body


def error_response(exc: FieldworkError) -> JSONResponse:
    return respond(Result.failure(exc))

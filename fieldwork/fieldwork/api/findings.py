"""Findings workflow endpoints (reporting, status changes, follow-ups)."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from fieldwork.api.views import finding_view, read_json, respond

router = APIRouter(prefix="/api/v1/findings")


@router.get("")
async def list_findings(ranger_id: str | None = None) -> JSONResponse:
    from fieldwork.main import get_engine

    return respond(await get_engine().list_findings(ranger_id), finding_view)


@router.post("")
async def report_finding(request: Request) -> JSONResponse:
    """Report a finding that is not tied to any activity."""
    from fieldwork.main import get_engine

    engine = get_engine()
    body = await read_json(request)
    result = await engine.report_finding(
        str(body.get("ranger_id") or engine.ranger_id or ""),
        body.get("title"),
        str(body.get("description") or ""),
        body.get("severity"),
        body.get("lat"),
        body.get("lng"),
        timestamp=body.get("timestamp"),
    )
    return respond(result, finding_view, status_code=201)


@router.patch("/{finding_id}/status")
async def advance_finding(finding_id: str, request: Request) -> JSONResponse:
    from fieldwork.main import get_engine

    body = await read_json(request)
    result = await get_engine().advance_finding(finding_id, body.get("status"))
    return respond(result, finding_view)


@router.post("/{finding_id}/follow-ups")
async def add_follow_up(finding_id: str, request: Request) -> JSONResponse:
    from fieldwork.main import get_engine

    body = await read_json(request)
    result = await get_engine().add_follow_up(
        finding_id, body.get("action"), body.get("notes"), actor=body.get("actor"),
    )
    return respond(result, finding_view, status_code=201)

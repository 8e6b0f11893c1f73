"""Field session endpoints: captures during an in-progress activity, resumption."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from fieldwork.api.views import (
    evidence_view,
    finding_view,
    read_json,
    respond,
    route_point_view,
    session_view,
)
from fieldwork.core.errors import Result

router = APIRouter(prefix="/api/v1/session")


@router.post("/resume")
async def resume_session(request: Request) -> JSONResponse:
    """Sign in a ranger and rebuild any session left in progress.

    An optional ``token`` replaces the bearer token used against the store.
    Value is the session view, or null when nothing is in progress.
    """
    from fieldwork.main import get_engine, get_tokens

    body = await read_json(request)
    if body.get("token"):
        get_tokens().set_token(str(body["token"]))
    result = await get_engine().authenticate(str(body.get("ranger_id") or ""))
    return respond(result, session_view)


@router.get("/{activity_id}")
async def get_session(activity_id: str) -> JSONResponse:
    from fieldwork.main import get_engine

    return respond(await get_engine().session_view(activity_id), session_view)


@router.delete("/{activity_id}")
async def abandon_session(activity_id: str) -> JSONResponse:
    from fieldwork.main import get_engine

    result = await get_engine().abandon_session(activity_id)
    if result.ok:
        result = Result.success({"evidence_lost": result.value})
    return respond(result)


# -- Route points --

@router.post("/{activity_id}/route-points")
async def add_route_point(activity_id: str, request: Request) -> JSONResponse:
    from fieldwork.main import get_engine

    body = await read_json(request)
    result = await get_engine().add_route_point(
        activity_id, body.get("lat"), body.get("lng"),
        timestamp=body.get("timestamp"), note=str(body.get("note") or ""),
    )
    return respond(result, route_point_view, status_code=201)


@router.delete("/{activity_id}/route-points/{point_id}")
async def remove_route_point(activity_id: str, point_id: str) -> JSONResponse:
    from fieldwork.main import get_engine

    return respond(await get_engine().remove_route_point(activity_id, point_id))


# -- Findings --

@router.post("/{activity_id}/findings")
async def add_finding(activity_id: str, request: Request) -> JSONResponse:
    from fieldwork.main import get_engine

    body = await read_json(request)
    result = await get_engine().add_finding(
        activity_id,
        body.get("title"),
        str(body.get("description") or ""),
        body.get("severity"),
        body.get("lat"),
        body.get("lng"),
        timestamp=body.get("timestamp"),
    )
    return respond(result, finding_view, status_code=201)


@router.delete("/{activity_id}/findings/{finding_id}")
async def remove_finding(activity_id: str, finding_id: str) -> JSONResponse:
    from fieldwork.main import get_engine

    return respond(await get_engine().remove_finding(activity_id, finding_id))


@router.post("/{activity_id}/findings/restore")
async def restore_findings(activity_id: str) -> JSONResponse:
    from fieldwork.main import get_engine

    return respond(await get_engine().restore_findings(activity_id), finding_view)


# -- Evidence (held locally until finish) --

@router.post("/{activity_id}/evidence")
async def add_evidence(activity_id: str, request: Request) -> JSONResponse:
    from fieldwork.main import get_engine

    body = await read_json(request)
    result = await get_engine().add_evidence(
        activity_id,
        body.get("url"),
        str(body.get("description") or ""),
        body.get("category"),
        timestamp=body.get("timestamp"),
        lat=body.get("lat"),
        lng=body.get("lng"),
    )
    return respond(result, evidence_view, status_code=201)


@router.delete("/{activity_id}/evidence/{evidence_id}")
async def remove_evidence(activity_id: str, evidence_id: str) -> JSONResponse:
    from fieldwork.main import get_engine

    return respond(await get_engine().remove_evidence(activity_id, evidence_id))

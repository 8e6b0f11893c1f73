"""Tests for the HTTP store adapter against a mocked remote API."""

from __future__ import annotations

import json

import httpx
import pytest

from fieldwork.core.cache import TTLCache
from fieldwork.core.engine import FieldSessionEngine
from fieldwork.core.errors import (
    IllegalTransition,
    MalformedRecord,
    NetworkError,
    SessionExpired,
    Timeout,
    ValidationError,
)
from fieldwork.core.models import (
    ActivityState,
    Coordinates,
    Evidence,
    EvidenceCategory,
    FinishBundle,
    RoutePoint,
    Stamp,
)
from fieldwork.core.stats import EngineStats
from fieldwork.store.base import StaticTokenProvider
from fieldwork.store.http_store import HttpActivityStore

BASE_URL = "http://store.test/api"
STAMP = Stamp(time="08:30", coordinates=Coordinates(14.6349, -90.5069))

SCHEDULED = {
    "act_id": 1,
    "act_codigo": "PAT-001",
    "tipo": {"tp_nombre": "Patrullaje de Control y Vigilancia"},
    "act_descripcion": "Sector norte",
    "act_fechah_programacion": "2026-10-19T00:00:00",
    "estado": {"std_nombre": "Programada"},
    "usuario": {"usr_id": 7},
}
IN_PROGRESS = {
    **SCHEDULED,
    "estado": {"std_nombre": "En Progreso"},
    "act_fechah_iniciio": "08:30",
    "act_latitud_inicio": "14.6349",
    "act_longitud_inicio": "-90.5069",
}


class Recorder:
    """MockTransport handler that records requests and replays canned answers."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        status, body = answer
        return httpx.Response(status, json=body)


def _store(handler, token="secret") -> HttpActivityStore:
    return HttpActivityStore(
        BASE_URL, StaticTokenProvider(token), timeout_seconds=5, transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_list_activities_sends_bearer_and_parses():
    handler = Recorder((200, {"success": True, "actividades": [SCHEDULED, IN_PROGRESS]}))
    store = _store(handler)

    activities = await store.list_activities("7")

    request = handler.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/api/actividades"
    assert request.url.params["usuario"] == "7"
    assert request.headers["Authorization"] == "Bearer secret"
    assert [a.state for a in activities] == [ActivityState.SCHEDULED, ActivityState.IN_PROGRESS]
    assert activities[0].id == "1"
    assert activities[0].ranger_id == "7"
    assert activities[0].scheduled_date == "2026-10-19"
    assert activities[1].lifecycle.start == STAMP
    await store.aclose()


@pytest.mark.asyncio
async def test_start_activity_puts_start_stamp():
    handler = Recorder((200, {"success": True, "actividad": IN_PROGRESS}))
    store = _store(handler)

    activity = await store.start_activity("1", STAMP)

    request = handler.requests[0]
    assert request.method == "PUT"
    assert request.url.path == "/api/actividades/1/iniciar"
    assert json.loads(request.content) == {
        "horaInicio": "08:30",
        "coordenadasInicio": {"lat": 14.6349, "lng": -90.5069},
    }
    assert activity.state is ActivityState.IN_PROGRESS


@pytest.mark.asyncio
async def test_finish_sends_pending_items_and_references():
    completed = {
        **IN_PROGRESS,
        "estado": {"std_nombre": "Completada"},
        "act_fechah_fin": "10:00",
        "act_latitud_fin": 14.636,
        "act_longitud_fin": -90.508,
    }
    handler = Recorder((200, {"success": True, "actividad": completed}))
    store = _store(handler)
    bundle = FinishBundle(
        observations="Sin novedad",
        evidence=(Evidence(url="https://photos.example.org/1.jpg", description="Huella",
                           category=EvidenceCategory.FAUNA, timestamp="09:10", id="ev-1"),),
        route_points=(RoutePoint(lat=14.636, lng=-90.508, timestamp="2026-10-19T09:55:00"),),
        persisted_route_point_ids=("11",),
        persisted_finding_ids=("21",),
    )

    activity = await store.finish_activity("1", Stamp("10:00", Coordinates(14.636, -90.508)), bundle)

    sent = json.loads(handler.requests[0].content)
    assert handler.requests[0].url.path == "/api/actividades/1/finalizar"
    assert sent["horaFin"] == "10:00"
    assert sent["observaciones"] == "Sin novedad"
    assert sent["hallazgos"] == []
    assert [e["id"] for e in sent["evidencias"]] == ["ev-1"]
    assert sent["evidencias"][0]["tipo"] == "Fauna"
    assert sent["puntosRecorrido"][0]["fecha"] == "2026-10-19"
    assert sent["puntosRecorrido"][0]["hora"] == "09:55"
    assert sent["puntosPersistidos"] == ["11"]
    assert sent["hallazgosPersistidos"] == ["21"]
    assert activity.state is ActivityState.COMPLETED


@pytest.mark.asyncio
async def test_add_route_point_returns_server_id():
    handler = Recorder((201, {"success": True, "coordenada": {
        "id": 11, "latitud": "14.635", "longitud": "-90.507", "fecha": "2026-10-19", "hora": "08:45",
    }}))
    store = _store(handler)

    point = await store.add_route_point("1", RoutePoint(lat=14.635, lng=-90.507, timestamp="2026-10-19T08:45"))

    assert point.id == "11"
    assert point.timestamp == "2026-10-19T08:45"
    assert handler.requests[0].url.path == "/api/actividades/1/coordenadas"


@pytest.mark.asyncio
async def test_fetch_active_in_progress():
    handler = Recorder(
        (200, {"success": True, "tieneActividadEnProgreso": False}),
        (200, {"success": True, "tieneActividadEnProgreso": True, "actividad": IN_PROGRESS,
               "coordenadas": [{"id": 11, "latitud": 14.635, "longitud": -90.507, "hora": "08:45"}]}),
    )
    store = _store(handler)

    assert await store.fetch_active_in_progress("7") is None
    session = await store.fetch_active_in_progress("7")
    assert session.activity.id == "1"
    assert [p.id for p in session.route_points] == ["11"]
    assert handler.requests[0].url.path == "/api/actividades/en-progreso"


@pytest.mark.asyncio
async def test_missing_token_never_reaches_network():
    handler = Recorder()
    store = _store(handler, token=None)

    with pytest.raises(SessionExpired):
        await store.list_activities("7")
    assert handler.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status,error", [
    (401, SessionExpired),
    (409, IllegalTransition),
    (422, ValidationError),
    (400, ValidationError),
    (500, NetworkError),
])
async def test_status_mapping(status, error):
    store = _store(Recorder((status, {"success": False, "error": "nope"})))
    with pytest.raises(error, match="nope"):
        await store.start_activity("1", STAMP)


@pytest.mark.asyncio
async def test_unsuccessful_envelope_is_network_error():
    store = _store(Recorder((200, {"success": False, "error": "db down"})))
    with pytest.raises(NetworkError, match="db down"):
        await store.get_activity("1")


@pytest.mark.asyncio
async def test_timeout_maps_to_timeout():
    store = _store(Recorder(httpx.ReadTimeout("slow")))
    with pytest.raises(Timeout):
        await store.list_activities("7")


@pytest.mark.asyncio
async def test_connection_error_maps_to_network_error():
    store = _store(Recorder(httpx.ConnectError("refused")))
    with pytest.raises(NetworkError):
        await store.list_activities("7")


@pytest.mark.asyncio
async def test_malformed_record_is_rejected():
    broken = {k: v for k, v in IN_PROGRESS.items() if k != "act_latitud_inicio"}
    store = _store(Recorder((200, {"success": True, "actividades": [broken]})))
    with pytest.raises(MalformedRecord):
        await store.list_activities("7")


@pytest.mark.asyncio
async def test_unknown_state_is_rejected():
    odd = {**SCHEDULED, "estado": {"std_nombre": "Cancelada"}}
    store = _store(Recorder((200, {"success": True, "actividad": odd})))
    with pytest.raises(MalformedRecord):
        await store.get_activity("1")


@pytest.mark.asyncio
async def test_answer_without_payload_is_rejected():
    store = _store(Recorder((200, {"success": True})))
    with pytest.raises(MalformedRecord):
        await store.list_activities("7")


@pytest.mark.asyncio
async def test_rejected_token_halts_engine():
    handler = Recorder(
        (200, {"success": True, "actividades": [SCHEDULED]}),
        (401, {"success": False, "error": "jwt expired"}),
    )
    engine = FieldSessionEngine(store=_store(handler), cache=TTLCache(), stats=EngineStats())
    assert (await engine.list_activities("7")).ok

    result = await engine.start("1", "08:30", 14.6349, -90.5069)

    assert result.error_kind == "session_expired"
    assert engine.halted
    assert (await engine.start("1", "08:31", 14.6349, -90.5069)).error_kind == "session_expired"
    assert len(handler.requests) == 2

"""Wire codec for the remote store's JSON records.

Records arrive with the store's column-style names (``act_id``,
``tipo.tp_nombre``, ``latitud`` ...). Every record is validated before it
becomes a model; anything unusable raises ``MalformedRecord`` so that it
never reaches the state machine.
"""

from __future__ import annotations

from typing import Any

from fieldwork.core.errors import MalformedRecord
from fieldwork.core.models import (
    ActiveSession,
    Activity,
    ActivityState,
    Completed,
    Coordinates,
    Evidence,
    Finding,
    FindingStatus,
    FinishBundle,
    FollowUpEntry,
    InProgress,
    RoutePoint,
    Scheduled,
    Severity,
    Stamp,
)


def _require(data: dict, key: str, record: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise MalformedRecord(f"{record} record is missing {key!r}")
    return value


def _as_float(value: Any, key: str, record: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise MalformedRecord(f"{record} field {key!r} is not a number: {value!r}") from None


def _as_id(value: Any) -> str:
    return str(value) if value is not None else ""


def _nested_name(data: dict, key: str, name_key: str) -> str:
    nested = data.get(key)
    if isinstance(nested, dict):
        return str(nested.get(name_key) or "")
    return ""


def _enum(enum_cls, value: Any, key: str, record: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise MalformedRecord(f"{record} field {key!r} has unknown value {value!r}") from None


def _stamp(data: dict, time_key: str, lat_key: str, lng_key: str, record: str) -> Stamp:
    time = _require(data, time_key, record)
    lat = _as_float(_require(data, lat_key, record), lat_key, record)
    lng = _as_float(_require(data, lng_key, record), lng_key, record)
    return Stamp(time=str(time), coordinates=Coordinates(lat=lat, lng=lng))


# -- Activities --

def parse_activity(data: Any) -> Activity:
    if not isinstance(data, dict):
        raise MalformedRecord(f"activity record must be an object, got {type(data).__name__}")
    record = "activity"
    activity_id = _as_id(_require(data, "act_id", record))
    state_name = _nested_name(data, "estado", "std_nombre") or data.get("act_estado")
    state = _enum(ActivityState, state_name, "estado", record)

    if state is ActivityState.SCHEDULED:
        lifecycle = Scheduled()
    else:
        start = _stamp(data, "act_fechah_iniciio", "act_latitud_inicio", "act_longitud_inicio", record)
        if state is ActivityState.IN_PROGRESS:
            lifecycle = InProgress(start=start)
        else:
            end = _stamp(data, "act_fechah_fin", "act_latitud_fin", "act_longitud_fin", record)
            lifecycle = Completed(start=start, end=end)

    usuario = data.get("usuario")
    ranger_id = _as_id(usuario.get("usr_id")) if isinstance(usuario, dict) else _as_id(data.get("act_usuario"))

    return Activity(
        id=activity_id,
        code=str(data.get("act_codigo") or ""),
        kind=_nested_name(data, "tipo", "tp_nombre") or str(data.get("act_tipo") or ""),
        description=str(data.get("act_descripcion") or ""),
        scheduled_date=str(data.get("act_fechah_programacion") or "").split("T")[0],
        ranger_id=ranger_id,
        lifecycle=lifecycle,
    )


# -- Route points --

def _split_timestamp(ts: str) -> tuple[str, str]:
    if "T" in ts:
        fecha, hora = ts.split("T", 1)
        return fecha, hora[:5]
    return "", ts


def parse_route_point(data: Any) -> RoutePoint:
    if not isinstance(data, dict):
        raise MalformedRecord("route point record must be an object")
    record = "route point"
    fecha = str(data.get("fecha") or "")
    hora = str(data.get("hora") or "")
    if not fecha and not hora:
        raise MalformedRecord("route point record has no timestamp")
    timestamp = f"{fecha}T{hora}" if fecha and hora else (fecha or hora)
    return RoutePoint(
        id=_as_id(_require(data, "id", record)),
        lat=_as_float(_require(data, "latitud", record), "latitud", record),
        lng=_as_float(_require(data, "longitud", record), "longitud", record),
        timestamp=timestamp,
        note=str(data.get("descripcion") or ""),
    )


def route_point_to_json(point: RoutePoint) -> dict:
    fecha, hora = _split_timestamp(point.timestamp)
    data = {
        "latitud": str(point.lat),
        "longitud": str(point.lng),
        "fecha": fecha,
        "hora": hora,
        "descripcion": point.note,
    }
    if point.id:
        data["id"] = point.id
    return data


# -- Findings --

def parse_follow_up(data: Any) -> FollowUpEntry:
    if not isinstance(data, dict):
        raise MalformedRecord("follow-up record must be an object")
    return FollowUpEntry(
        timestamp=str(_require(data, "fecha", "follow-up")),
        action=str(_require(data, "accion", "follow-up")),
        actor=str(data.get("responsable") or ""),
        notes=str(data.get("observaciones") or ""),
    )


def parse_finding(data: Any) -> Finding:
    if not isinstance(data, dict):
        raise MalformedRecord("finding record must be an object")
    record = "finding"
    follow_ups = data.get("seguimiento") or []
    if not isinstance(follow_ups, list):
        raise MalformedRecord("finding field 'seguimiento' must be a list")
    activity_id = data.get("actividad")
    return Finding(
        id=_as_id(_require(data, "id", record)),
        title=str(_require(data, "titulo", record)),
        description=str(data.get("descripcion") or ""),
        severity=_enum(Severity, data.get("gravedad") or Severity.MODERATE.value, "gravedad", record),
        coordinates=Coordinates(
            lat=_as_float(_require(data, "latitud", record), "latitud", record),
            lng=_as_float(_require(data, "longitud", record), "longitud", record),
        ),
        timestamp=str(data.get("fecha") or ""),
        activity_id=_as_id(activity_id) if activity_id not in (None, "") else None,
        status=_enum(FindingStatus, data.get("estado") or FindingStatus.REPORTED.value, "estado", record),
        resolved_at=data.get("fecha_resolucion") or None,
        follow_ups=tuple(parse_follow_up(f) for f in follow_ups),
        ranger_id=_as_id(data.get("usuario")),
    )


def finding_to_json(finding: Finding) -> dict:
    data = {
        "titulo": finding.title,
        "descripcion": finding.description,
        "gravedad": finding.severity.value,
        "latitud": str(finding.coordinates.lat),
        "longitud": str(finding.coordinates.lng),
        "fecha": finding.timestamp,
        "estado": finding.status.value,
        "actividad": finding.activity_id,
        "usuario": finding.ranger_id,
        "fecha_resolucion": finding.resolved_at,
        "seguimiento": [follow_up_to_json(f) for f in finding.follow_ups],
    }
    if finding.id:
        data["id"] = finding.id
    return data


def follow_up_to_json(entry: FollowUpEntry) -> dict:
    return {
        "fecha": entry.timestamp,
        "accion": entry.action,
        "responsable": entry.actor,
        "observaciones": entry.notes,
    }


# -- Evidence --

def evidence_to_json(evidence: Evidence) -> dict:
    data = {
        "id": evidence.id,
        "url": evidence.url,
        "descripcion": evidence.description,
        "tipo": evidence.category.value,
        "fecha": evidence.timestamp,
    }
    if evidence.coordinates is not None:
        data["latitud"] = str(evidence.coordinates.lat)
        data["longitud"] = str(evidence.coordinates.lng)
    return data


# -- Envelopes --

def finish_body(stamp: Stamp, bundle: FinishBundle) -> dict:
    return {
        "horaFin": stamp.time,
        "coordenadasFin": {"lat": stamp.coordinates.lat, "lng": stamp.coordinates.lng},
        "observaciones": bundle.observations,
        "hallazgos": [finding_to_json(f) for f in bundle.findings],
        "evidencias": [evidence_to_json(e) for e in bundle.evidence],
        "puntosRecorrido": [route_point_to_json(p) for p in bundle.route_points],
        "hallazgosPersistidos": list(bundle.persisted_finding_ids),
        "puntosPersistidos": list(bundle.persisted_route_point_ids),
    }


def parse_active_session(body: dict) -> ActiveSession | None:
    if not body.get("tieneActividadEnProgreso"):
        return None
    raw = body.get("actividad")
    if raw is None:
        raise MalformedRecord("in-progress answer carries no activity")
    activity = parse_activity(raw)
    if activity.state is not ActivityState.IN_PROGRESS:
        raise MalformedRecord(f"in-progress answer returned activity in state {activity.state.value!r}")
    points = body.get("coordenadas") or []
    if not isinstance(points, list):
        raise MalformedRecord("'coordenadas' must be a list")
    return ActiveSession(activity=activity, route_points=tuple(parse_route_point(p) for p in points))

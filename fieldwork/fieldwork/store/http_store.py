"""HTTP implementation of ActivityStore.

Talks JSON to the remote store with a bearer token. Every answer uses the
envelope ``{"success": bool, "error": str, ...}``.

Status mapping:
- missing token / 401 -> SessionExpired (never retried)
- 409 -> IllegalTransition
- 400, 422 -> ValidationError
- 404 -> NotFound
- timeout -> Timeout
- any other failure -> NetworkError
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

import httpx
import structlog

from fieldwork.core.errors import (
    IllegalTransition,
    MalformedRecord,
    NetworkError,
    NotFound,
    SessionExpired,
    Timeout,
    ValidationError,
)
from fieldwork.store import codec

if TYPE_CHECKING:
    from fieldwork.core.models import (
        ActiveSession,
        Activity,
        Finding,
        FindingStatus,
        FinishBundle,
        FollowUpEntry,
        RoutePoint,
        Stamp,
    )
    from fieldwork.store.base import TokenProvider

log = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 30.0


class HttpActivityStore:
    """ActivityStore backed by the remote HTTP API."""

    def __init__(
        self,
        base_url: str,
        tokens: TokenProvider,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._tokens = tokens
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict | None = None,
    ) -> dict:
        token = self._tokens.get_token()
        if not token:
            log.warning("store_request_without_token", method=method, path=path)
            raise SessionExpired("no bearer token available")

        if params:
            params = {k: v for k, v in params.items() if v not in (None, "")}

        try:
            resp = await self._client.request(
                method,
                path,
                json=json,
                params=params or None,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException:
            log.warning("store_timeout", method=method, path=path)
            raise Timeout(f"{method} {path} timed out") from None
        except httpx.RequestError as exc:
            log.warning("store_unreachable", method=method, path=path, error=str(exc))
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = str(body.get("error") or body.get("message") or f"HTTP {resp.status_code}")

        if resp.status_code == 401:
            log.warning("store_session_expired", method=method, path=path)
            raise SessionExpired(message)
        if resp.status_code == 409:
            raise IllegalTransition(message)
        if resp.status_code in (400, 422):
            raise ValidationError(message)
        if resp.status_code == 404:
            raise NotFound(message)
        if resp.status_code >= 400:
            log.error("store_error", method=method, path=path, status=resp.status_code, error=message)
            raise NetworkError(message, status_code=resp.status_code)

        if body.get("success") is False:
            raise NetworkError(message, status_code=resp.status_code)
        return body

    @staticmethod
    def _field(body: dict, key: str) -> Any:
        if key not in body:
            raise MalformedRecord(f"store answer has no {key!r}")
        return body[key]

    def _list(self, body: dict, key: str) -> list:
        value = self._field(body, key)
        if not isinstance(value, list):
            raise MalformedRecord(f"store answer field {key!r} must be a list")
        return value

    # -- Activities --

    async def fetch_active_in_progress(self, ranger_id: str) -> ActiveSession | None:
        body = await self._request("GET", "/actividades/en-progreso", params={"usuario": ranger_id})
        return codec.parse_active_session(body)

    async def list_activities(self, ranger_id: str) -> list[Activity]:
        body = await self._request("GET", "/actividades", params={"usuario": ranger_id})
        return [codec.parse_activity(a) for a in self._list(body, "actividades")]

    async def get_activity(self, activity_id: str) -> Activity:
        body = await self._request("GET", f"/actividades/{activity_id}")
        return codec.parse_activity(self._field(body, "actividad"))

    async def start_activity(self, activity_id: str, stamp: Stamp) -> Activity:
        body = await self._request("PUT", f"/actividades/{activity_id}/iniciar", json={
            "horaInicio": stamp.time,
            "coordenadasInicio": {"lat": stamp.coordinates.lat, "lng": stamp.coordinates.lng},
        })
        return codec.parse_activity(self._field(body, "actividad"))

    async def finish_activity(self, activity_id: str, stamp: Stamp, bundle: FinishBundle) -> Activity:
        body = await self._request(
            "PUT", f"/actividades/{activity_id}/finalizar", json=codec.finish_body(stamp, bundle),
        )
        return codec.parse_activity(self._field(body, "actividad"))

    # -- Route points --

    async def list_route_points(self, activity_id: str) -> list[RoutePoint]:
        body = await self._request("GET", f"/actividades/{activity_id}/coordenadas")
        return [codec.parse_route_point(p) for p in self._list(body, "coordenadas")]

    async def add_route_point(self, activity_id: str, point: RoutePoint) -> RoutePoint:
        body = await self._request(
            "POST", f"/actividades/{activity_id}/coordenadas", json=codec.route_point_to_json(point),
        )
        return codec.parse_route_point(self._field(body, "coordenada"))

    async def remove_route_point(self, activity_id: str, point_id: str) -> None:
        await self._request("DELETE", f"/actividades/{activity_id}/coordenadas/{point_id}")

    # -- Findings --

    async def add_finding(self, activity_id: str, finding: Finding) -> Finding:
        body = await self._request(
            "POST", f"/actividades/{activity_id}/hallazgos", json=codec.finding_to_json(finding),
        )
        return codec.parse_finding(self._field(body, "hallazgo"))

    async def remove_finding(self, activity_id: str, finding_id: str) -> None:
        await self._request("DELETE", f"/actividades/{activity_id}/hallazgos/{finding_id}")

    async def list_findings(
        self, ranger_id: str | None = None, activity_id: str | None = None,
    ) -> list[Finding]:
        body = await self._request(
            "GET", "/hallazgos", params={"usuario": ranger_id, "actividad": activity_id},
        )
        return [codec.parse_finding(f) for f in self._list(body, "hallazgos")]

    async def create_finding(self, finding: Finding) -> Finding:
        body = await self._request("POST", "/hallazgos", json=codec.finding_to_json(finding))
        return codec.parse_finding(self._field(body, "hallazgo"))

    async def update_finding_status(self, finding_id: str, status: FindingStatus) -> Finding:
        body = await self._request(
            "PATCH", f"/hallazgos/{finding_id}/estado", json={"nuevoEstado": status.value},
        )
        return codec.parse_finding(self._field(body, "hallazgo"))

    async def add_follow_up(self, finding_id: str, entry: FollowUpEntry) -> Finding:
        body = await self._request(
            "POST", f"/hallazgos/{finding_id}/seguimiento", json=codec.follow_up_to_json(entry),
        )
        return codec.parse_finding(self._field(body, "hallazgo"))

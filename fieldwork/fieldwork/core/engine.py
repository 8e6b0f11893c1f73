"""Field session engine: activity lifecycle, field buffers and resumption.

This is the core business logic. It depends on the ActivityStore protocol,
not on a concrete store, and receives its cache explicitly.

Every public coroutine returns a ``Result``: domain failures never escape as
exceptions. A SessionExpired from the store halts the engine: client state
is cleared, an event is emitted, and mutating calls are refused until
``authenticate`` is called again.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, TYPE_CHECKING

import structlog

from fieldwork.core import findings as finding_rules
from fieldwork.core.buffer import FieldSessionBuffer, build_bundle
from fieldwork.core.cache import Resource, ResourceKey
from fieldwork.core.errors import (
    FieldworkError,
    IllegalTransition,
    NetworkError,
    Result,
    SessionExpired,
    Timeout,
    ValidationError,
)
from fieldwork.core.events import SESSION_EXPIRED, SESSION_RESUMED, EventBus
from fieldwork.core.geo import path_length_km
from fieldwork.core.models import (
    Activity,
    ActivityState,
    Coordinates,
    Evidence,
    EvidenceCategory,
    Finding,
    FindingStatus,
    FollowUpEntry,
    RoutePoint,
    Severity,
)
from fieldwork.core.state_machine import (
    ActivityStateMachine,
    validate_coordinates,
    validate_stamp,
    validate_time,
)

if TYPE_CHECKING:
    from fieldwork.core.cache import TTLCache
    from fieldwork.core.stats import EngineStats
    from fieldwork.store.base import ActivityStore

log = structlog.get_logger()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True)
class SessionSnapshot:
    """What the UI shows for an in-progress activity."""
    activity: Activity
    findings: tuple[Finding, ...]
    evidence: tuple[Evidence, ...]
    route_points: tuple[RoutePoint, ...]
    distance_km: float
    buffered: bool


def _parse_enum(enum_cls, value: Any, what: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{what} must be one of: {allowed}") from None


def _required_text(value: str | None, what: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{what} is required")
    return str(value).strip()


# -- Item builders (raise ValidationError) --

def build_route_point(
    lat: float | None,
    lng: float | None,
    timestamp: str,
    note: str | None = "",
) -> RoutePoint:
    coords = validate_coordinates(lat, lng, "route point")
    return RoutePoint(
        lat=coords.lat,
        lng=coords.lng,
        timestamp=validate_time(timestamp, "route point time"),
        note=note or "",
    )


def build_finding(
    title: str | None,
    description: str | None,
    severity: Severity | str | None,
    lat: float | None,
    lng: float | None,
    timestamp: str,
    activity_id: str | None = None,
    ranger_id: str = "",
) -> Finding:
    return Finding(
        title=_required_text(title, "finding title"),
        description=description or "",
        severity=_parse_enum(Severity, severity or Severity.MODERATE, "severity"),
        coordinates=validate_coordinates(lat, lng, "finding"),
        timestamp=validate_time(timestamp, "finding time"),
        activity_id=activity_id,
        ranger_id=ranger_id,
    )


def build_evidence(
    url: str | None,
    description: str | None,
    category: EvidenceCategory | str | None,
    timestamp: str,
    lat: float | None = None,
    lng: float | None = None,
) -> Evidence:
    coords: Coordinates | None = None
    if lat is not None or lng is not None:
        coords = validate_coordinates(lat, lng, "evidence")
    return Evidence(
        url=_required_text(url, "evidence url"),
        description=description or "",
        category=_parse_enum(EvidenceCategory, category, "evidence category"),
        timestamp=validate_time(timestamp, "evidence time"),
        coordinates=coords,
    )


class FieldSessionEngine:
    """Coordinates the state machine, the store, the cache and field buffers."""

    def __init__(
        self,
        store: ActivityStore,
        cache: TTLCache,
        stats: EngineStats,
        events: EventBus | None = None,
        now: Callable[[], str] = _utc_now,
    ) -> None:
        self._store = store
        self._cache = cache
        self._stats = stats
        self._events = events or EventBus()
        self._now = now
        self._machine = ActivityStateMachine()
        self._activities: dict[str, Activity] = {}
        self._buffers: dict[str, FieldSessionBuffer] = {}
        self._ranger_id: str | None = None
        self._halted = False

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def ranger_id(self) -> str | None:
        return self._ranger_id

    @property
    def halted(self) -> bool:
        return self._halted

    def now(self) -> str:
        return self._now()

    def buffer_for(self, activity_id: str) -> FieldSessionBuffer | None:
        return self._buffers.get(activity_id)

    # -- Plumbing --

    async def _run(
        self,
        op: str,
        action: Callable[[], Awaitable[Any]],
        *,
        mutating: bool = True,
    ) -> Result:
        if mutating and self._halted:
            self._stats.record_failure(SessionExpired.kind)
            return Result.failure(SessionExpired("session expired; sign in again"))
        try:
            value = await action()
        except SessionExpired as exc:
            self._expire(exc)
            return Result.failure(exc)
        except FieldworkError as exc:
            self._stats.record_failure(exc.kind)
            log.warning("operation_failed", op=op, kind=exc.kind, error=exc.message)
            return Result.failure(exc)
        return Result.success(value)

    def _expire(self, exc: SessionExpired) -> None:
        self._halted = True
        self._buffers.clear()
        self._activities.clear()
        self._cache.clear()
        self._stats.record_session_expired()
        self._stats.record_failure(exc.kind)
        log.error("session_expired", ranger_id=self._ranger_id, reason=exc.message)
        self._events.emit(SESSION_EXPIRED, ranger_id=self._ranger_id, reason=exc.message)

    def _remember(self, activity: Activity) -> Activity:
        self._activities[activity.id] = activity
        return activity

    def _forget(self, activity_id: str) -> None:
        self._activities.pop(activity_id, None)

    async def _refresh(self, activity_id: str) -> Activity:
        """Fetch the store's current record; adopt an open patrol session with no local buffer."""
        activity = self._remember(await self._store.get_activity(activity_id))
        self._stats.record_store_success()
        if (activity.is_patrol and activity.state is ActivityState.IN_PROGRESS
                and activity_id not in self._buffers):
            points = await self._store.list_route_points(activity_id)
            self._buffers[activity_id] = FieldSessionBuffer(activity_id, self._store, route_points=points)
            log.info("session_adopted", activity_id=activity_id, route_points=len(points))
        return activity

    async def _activity(self, activity_id: str) -> Activity:
        known = self._activities.get(activity_id)
        if known is not None:
            return known
        return await self._refresh(activity_id)

    async def _checked(self, activity_id: str, check: Callable[[Activity], None]) -> Activity:
        """Run a state guard, re-reading the store once if the local record disagrees."""
        known = self._activities.get(activity_id)
        if known is not None:
            try:
                check(known)
                return known
            except IllegalTransition:
                log.debug("activity_record_stale", activity_id=activity_id, state=known.state.value)
        activity = await self._refresh(activity_id)
        check(activity)
        return activity

    async def _open_activity(self, activity_id: str) -> Activity:
        return await self._checked(activity_id, self._machine.check_open)

    def _invalidate_activities(self, ranger_id: str) -> None:
        self._cache.invalidate(ResourceKey(Resource.ACTIVITIES, ranger_id))

    # -- Identity & resumption --

    async def authenticate(self, ranger_id: str) -> Result:
        """The ranger's identity became known (sign-in or re-authentication)."""
        if not ranger_id or not ranger_id.strip():
            return Result.failure(ValidationError("ranger id is required"))
        self._halted = False
        self._ranger_id = ranger_id
        log.info("ranger_identified", ranger_id=ranger_id)
        return await self.resume(ranger_id)

    async def resume(self, ranger_id: str) -> Result:
        """Rebuild the field session of an activity left in progress, if any.

        Value is a SessionSnapshot, or None when nothing is in progress.
        Route points come from the store; findings start empty (see
        ``restore_findings``); evidence is not recoverable.
        """
        async def action() -> SessionSnapshot | None:
            session = await self._store.fetch_active_in_progress(ranger_id)
            self._stats.record_store_success()
            if session is None:
                log.debug("no_session_to_resume", ranger_id=ranger_id)
                return None

            activity = self._remember(session.activity)
            if activity.is_patrol and activity.id not in self._buffers:
                self._buffers[activity.id] = FieldSessionBuffer(
                    activity.id, self._store, route_points=session.route_points,
                )
            snapshot = self._snapshot(activity, fallback_points=session.route_points)
            self._stats.record_resumed()
            log.info("session_resumed", ranger_id=ranger_id, activity_id=activity.id,
                     route_points=len(snapshot.route_points))
            self._events.emit(SESSION_RESUMED, ranger_id=ranger_id, activity_id=activity.id)
            return snapshot

        return await self._run("resume", action, mutating=False)

    def _snapshot(
        self,
        activity: Activity,
        fallback_points: tuple[RoutePoint, ...] = (),
    ) -> SessionSnapshot:
        buf = self._buffers.get(activity.id)
        if buf is None:
            return SessionSnapshot(
                activity=activity,
                findings=(),
                evidence=(),
                route_points=tuple(fallback_points),
                distance_km=path_length_km(fallback_points),
                buffered=False,
            )
        return SessionSnapshot(
            activity=activity,
            findings=tuple(buf.findings),
            evidence=tuple(buf.evidence),
            route_points=tuple(buf.route_points),
            distance_km=path_length_km(buf.route_points),
            buffered=True,
        )

    # -- Lifecycle transitions --

    async def start(
        self,
        activity_id: str,
        start_time: str | None,
        lat: float | None,
        lng: float | None,
    ) -> Result:
        async def action() -> Activity:
            stamp = validate_stamp(start_time, lat, lng, "start")
            await self._checked(activity_id, self._machine.check_start)

            try:
                updated = self._remember(await self._store.start_activity(activity_id, stamp))
            except (Timeout, NetworkError, IllegalTransition):
                self._forget(activity_id)
                raise
            self._stats.record_store_success()
            self._invalidate_activities(updated.ranger_id)
            if updated.is_patrol:
                self._buffers[activity_id] = FieldSessionBuffer(activity_id, self._store)
            self._stats.record_started()
            log.info("activity_started", activity_id=activity_id, kind=updated.kind,
                     patrol=updated.is_patrol, time=stamp.time)
            return updated

        return await self._run("start", action)

    async def finish(
        self,
        activity_id: str,
        end_time: str | None,
        lat: float | None,
        lng: float | None,
        observations: str = "",
        findings: list[Finding] | tuple[Finding, ...] = (),
        evidence: list[Evidence] | tuple[Evidence, ...] = (),
        route_points: list[RoutePoint] | tuple[RoutePoint, ...] = (),
    ) -> Result:
        """Complete an in-progress activity with one bundled finalize call.

        Already-persisted findings and route points travel as id references;
        only pending items and evidence are sent. On failure the buffer is
        left untouched so the same call can be retried.
        """
        async def action() -> Activity:
            stamp = validate_stamp(end_time, lat, lng, "end")
            await self._checked(activity_id, self._machine.check_finish)

            buf = self._buffers.get(activity_id)
            if buf is not None:
                bundle = buf.finish_bundle(observations, findings, evidence, route_points)
            else:
                bundle = build_bundle(observations, list(findings), list(evidence), list(route_points))

            try:
                updated = self._remember(await self._store.finish_activity(activity_id, stamp, bundle))
            except (Timeout, NetworkError, IllegalTransition):
                self._forget(activity_id)
                raise
            self._stats.record_store_success()
            self._buffers.pop(activity_id, None)
            self._invalidate_activities(updated.ranger_id)
            self._cache.invalidate(ResourceKey(Resource.ROUTES, activity_id))
            self._cache.invalidate(Resource.FINDINGS)
            self._stats.record_finished(len(bundle.evidence))
            log.info("activity_finished", activity_id=activity_id,
                     evidence=len(bundle.evidence),
                     pending_findings=len(bundle.findings),
                     pending_route_points=len(bundle.route_points))
            return updated

        return await self._run("finish", action)

    # -- Field captures --

    async def add_route_point(
        self,
        activity_id: str,
        lat: float | None,
        lng: float | None,
        timestamp: str | None = None,
        note: str = "",
    ) -> Result:
        async def action() -> RoutePoint:
            point = build_route_point(lat, lng, timestamp or self._now(), note)
            await self._open_activity(activity_id)

            buf = self._buffers.get(activity_id)
            if buf is not None:
                stored = await buf.add_route_point(point)
            else:
                stored = await self._store.add_route_point(activity_id, point)
            self._stats.record_store_success()
            self._cache.invalidate(ResourceKey(Resource.ROUTES, activity_id))
            self._stats.record_route_point()
            return stored

        return await self._run("add_route_point", action)

    async def remove_route_point(self, activity_id: str, point_id: str) -> Result:
        async def action() -> None:
            await self._open_activity(activity_id)
            buf = self._buffers.get(activity_id)
            if buf is not None:
                await buf.remove_route_point(point_id)
            else:
                await self._store.remove_route_point(activity_id, point_id)
            self._stats.record_store_success()
            self._cache.invalidate(ResourceKey(Resource.ROUTES, activity_id))
            log.info("route_point_removed", activity_id=activity_id, point_id=point_id)

        return await self._run("remove_route_point", action)

    async def add_finding(
        self,
        activity_id: str,
        title: str | None,
        description: str,
        severity: Severity | str,
        lat: float | None,
        lng: float | None,
        timestamp: str | None = None,
    ) -> Result:
        async def action() -> Finding:
            finding = build_finding(title, description, severity, lat, lng,
                                    timestamp or self._now(), activity_id=activity_id)
            activity = await self._open_activity(activity_id)
            finding = replace(finding, ranger_id=activity.ranger_id)

            buf = self._buffers.get(activity_id)
            if buf is not None:
                stored = await buf.add_finding(finding)
            else:
                stored = await self._store.add_finding(activity_id, finding)
            self._stats.record_store_success()
            self._cache.invalidate(Resource.FINDINGS)
            self._stats.record_finding()
            return stored

        return await self._run("add_finding", action)

    async def remove_finding(self, activity_id: str, finding_id: str) -> Result:
        async def action() -> None:
            await self._open_activity(activity_id)
            buf = self._buffers.get(activity_id)
            if buf is not None:
                await buf.remove_finding(finding_id)
            else:
                await self._store.remove_finding(activity_id, finding_id)
            self._stats.record_store_success()
            self._cache.invalidate(Resource.FINDINGS)
            log.info("finding_removed", activity_id=activity_id, finding_id=finding_id)

        return await self._run("remove_finding", action)

    async def _evidence_buffer(self, activity_id: str) -> FieldSessionBuffer:
        buf = self._buffers.get(activity_id)
        if buf is not None:
            return buf
        await self._open_activity(activity_id)
        buf = self._buffers.get(activity_id)
        if buf is None:
            raise ValidationError(
                f"activity {activity_id} has no field session; submit evidence with finish"
            )
        return buf

    async def add_evidence(
        self,
        activity_id: str,
        url: str | None,
        description: str,
        category: EvidenceCategory | str,
        timestamp: str | None = None,
        lat: float | None = None,
        lng: float | None = None,
    ) -> Result:
        """Hold a photo reference locally until Finish. No network call once the session is open."""
        async def action() -> Evidence:
            evidence = build_evidence(url, description, category, timestamp or self._now(), lat, lng)
            buf = await self._evidence_buffer(activity_id)
            stored = buf.add_evidence(evidence)
            self._stats.record_evidence()
            log.info("evidence_held", activity_id=activity_id, evidence_id=stored.id)
            return stored

        return await self._run("add_evidence", action)

    async def remove_evidence(self, activity_id: str, evidence_id: str) -> Result:
        async def action() -> None:
            (await self._evidence_buffer(activity_id)).remove_evidence(evidence_id)

        return await self._run("remove_evidence", action)

    async def abandon_session(self, activity_id: str) -> Result:
        """Drop the local buffer. Persisted items stay in the store; pending evidence is lost."""
        async def action() -> int:
            buf = self._buffers.pop(activity_id, None)
            if buf is None:
                return 0
            lost = len(buf.evidence)
            buf.clear()
            self._stats.record_abandoned()
            log.warning("session_abandoned", activity_id=activity_id, evidence_lost=lost)
            return lost

        return await self._run("abandon_session", action, mutating=False)

    async def restore_findings(self, activity_id: str) -> Result:
        """Re-populate a resumed buffer's findings from the activity's own list."""
        async def action() -> list[Finding]:
            buf = self._buffers.get(activity_id)
            if buf is None:
                raise IllegalTransition(f"activity {activity_id} has no open field session")
            found = await self._store.list_findings(activity_id=activity_id)
            self._stats.record_store_success()
            buf.seed_findings(found)
            return found

        return await self._run("restore_findings", action, mutating=False)

    async def session_view(self, activity_id: str) -> Result:
        async def action() -> SessionSnapshot:
            activity = await self._activity(activity_id)
            return self._snapshot(activity)

        return await self._run("session_view", action, mutating=False)

    # -- Cached reads --

    async def list_activities(self, ranger_id: str) -> Result:
        async def load() -> list[Activity]:
            activities = await self._store.list_activities(ranger_id)
            self._stats.record_store_success()
            return activities

        async def action() -> list[Activity]:
            activities = await self._cache.read(ResourceKey(Resource.ACTIVITIES, ranger_id), load)
            for a in activities:
                self._remember(a)
            return activities

        return await self._run("list_activities", action, mutating=False)

    async def route_history(self, activity_id: str) -> Result:
        async def load() -> list[RoutePoint]:
            points = await self._store.list_route_points(activity_id)
            self._stats.record_store_success()
            return points

        return await self._run(
            "route_history",
            lambda: self._cache.read(ResourceKey(Resource.ROUTES, activity_id), load),
            mutating=False,
        )

    async def list_findings(self, ranger_id: str | None = None) -> Result:
        async def load() -> list[Finding]:
            found = await self._store.list_findings(ranger_id=ranger_id)
            self._stats.record_store_success()
            return found

        return await self._run(
            "list_findings",
            lambda: self._cache.read(ResourceKey(Resource.FINDINGS, ranger_id or "*"), load),
            mutating=False,
        )

    # -- Findings workflow --

    async def report_finding(
        self,
        ranger_id: str,
        title: str | None,
        description: str,
        severity: Severity | str,
        lat: float | None,
        lng: float | None,
        timestamp: str | None = None,
    ) -> Result:
        """Report an independent finding (not linked to any activity)."""
        async def action() -> Finding:
            finding = build_finding(title, description, severity, lat, lng,
                                    timestamp or self._now(),
                                    ranger_id=_required_text(ranger_id, "ranger id"))
            stored = await self._store.create_finding(finding)
            self._stats.record_store_success()
            self._cache.invalidate(Resource.FINDINGS)
            self._stats.record_finding()
            log.info("finding_reported", finding_id=stored.id, ranger_id=ranger_id)
            return stored

        return await self._run("report_finding", action)

    async def advance_finding(self, finding_id: str, status: FindingStatus | str) -> Result:
        async def action() -> Finding:
            new_status = _parse_enum(FindingStatus, status, "finding status")
            updated = await self._store.update_finding_status(finding_id, new_status)
            self._stats.record_store_success()
            self._cache.invalidate(Resource.FINDINGS)
            log.info("finding_advanced", finding_id=finding_id, status=new_status.value)
            return updated

        return await self._run("advance_finding", action)

    async def add_follow_up(
        self,
        finding_id: str,
        action_text: str | None,
        notes: str | None,
        actor: str | None = None,
    ) -> Result:
        async def action() -> Finding:
            text, clean_notes = finding_rules.validate_follow_up(action_text, notes)
            entry = FollowUpEntry(
                timestamp=self._now(),
                action=text,
                actor=actor or self._ranger_id or "",
                notes=clean_notes,
            )
            updated = await self._store.add_follow_up(finding_id, entry)
            self._stats.record_store_success()
            self._cache.invalidate(Resource.FINDINGS)
            return updated

        return await self._run("add_follow_up", action)

"""In-process implementation of ActivityStore.

Applies the same rules as the remote store (transition guards, id
assignment, idempotent finalize). Used for development mode, the patrol
simulator and tests.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

import structlog

from fieldwork.core import findings as finding_rules
from fieldwork.core.errors import FieldworkError, NotFound
from fieldwork.core.models import (
    ActiveSession,
    Activity,
    ActivityState,
    Evidence,
    Finding,
    FindingStatus,
    FinishBundle,
    FollowUpEntry,
    RoutePoint,
    Stamp,
)
from fieldwork.core.state_machine import ActivityStateMachine

log = structlog.get_logger()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class InMemoryActivityStore:
    """ActivityStore backed by dicts. Zero dependencies."""

    def __init__(self, now: Callable[[], str] = _utc_now) -> None:
        self._now = now
        self._machine = ActivityStateMachine()
        self._activities: dict[str, Activity] = {}
        self._route_points: dict[str, list[RoutePoint]] = {}
        self._findings: dict[str, Finding] = {}
        self._evidence: dict[str, tuple[str, Evidence]] = {}   # evidence id -> (activity id, evidence)
        self._observations: dict[str, str] = {}
        self._next_id = 1
        self._failures: dict[str, list[FieldworkError]] = {}
        # Number of calls per operation, for tests and the stats endpoint.
        self.calls: Counter[str] = Counter()

    def _new_id(self) -> str:
        value = str(self._next_id)
        self._next_id += 1
        return value

    def _enter(self, op: str) -> None:
        self.calls[op] += 1
        pending = self._failures.get(op)
        if pending:
            raise pending.pop(0)

    def fail_next(self, op: str, error: FieldworkError) -> None:
        """Make the next call to ``op`` raise ``error`` without touching state."""
        self._failures.setdefault(op, []).append(error)

    def _activity(self, activity_id: str) -> Activity:
        try:
            return self._activities[activity_id]
        except KeyError:
            raise NotFound(f"activity {activity_id} not found") from None

    def _finding(self, finding_id: str) -> Finding:
        try:
            return self._findings[finding_id]
        except KeyError:
            raise NotFound(f"finding {finding_id} not found") from None

    # -- Seeding (scheduling is outside the engine) --

    def seed_activity(self, activity: Activity) -> Activity:
        if not activity.id:
            activity = replace(activity, id=self._new_id())
        self._activities[activity.id] = activity
        self._route_points.setdefault(activity.id, [])
        return activity

    def evidence_for(self, activity_id: str) -> list[Evidence]:
        return [e for aid, e in self._evidence.values() if aid == activity_id]

    # -- Activities --

    async def fetch_active_in_progress(self, ranger_id: str) -> ActiveSession | None:
        self._enter("fetch_active_in_progress")
        active = [
            a for a in self._activities.values()
            if a.ranger_id == ranger_id and a.state is ActivityState.IN_PROGRESS
        ]
        if not active:
            return None
        # Most recently started first.
        activity = sorted(active, key=lambda a: a.lifecycle.start.time, reverse=True)[0]
        return ActiveSession(
            activity=activity,
            route_points=tuple(self._route_points.get(activity.id, [])),
        )

    async def list_activities(self, ranger_id: str) -> list[Activity]:
        self._enter("list_activities")
        return [a for a in self._activities.values() if a.ranger_id == ranger_id]

    async def get_activity(self, activity_id: str) -> Activity:
        self._enter("get_activity")
        return self._activity(activity_id)

    async def start_activity(self, activity_id: str, stamp: Stamp) -> Activity:
        self._enter("start_activity")
        activity = self._machine.started(self._activity(activity_id), stamp)
        self._activities[activity_id] = activity
        log.debug("store_activity_started", activity_id=activity_id)
        return activity

    async def finish_activity(self, activity_id: str, stamp: Stamp, bundle: FinishBundle) -> Activity:
        self._enter("finish_activity")
        activity = self._machine.finished(self._activity(activity_id), stamp)

        for finding in bundle.findings:
            if finding.id and finding.id in self._findings:
                continue
            fid = self._new_id()
            self._findings[fid] = replace(
                finding, id=fid, activity_id=activity_id,
                ranger_id=finding.ranger_id or activity.ranger_id,
            )
        points = self._route_points.setdefault(activity_id, [])
        known = {p.id for p in points}
        for point in bundle.route_points:
            if point.id and point.id in known:
                continue
            points.append(replace(point, id=self._new_id()))
        for evidence in bundle.evidence:
            # Evidence ids are client generated, so a retried bundle never duplicates.
            key = evidence.id or self._new_id()
            if key not in self._evidence:
                self._evidence[key] = (activity_id, replace(evidence, id=key))
        self._observations[activity_id] = bundle.observations

        self._activities[activity_id] = activity
        log.debug("store_activity_finished", activity_id=activity_id,
                  evidence=len(bundle.evidence))
        return activity

    # -- Route points --

    async def list_route_points(self, activity_id: str) -> list[RoutePoint]:
        self._enter("list_route_points")
        self._activity(activity_id)
        return list(self._route_points.get(activity_id, []))

    async def add_route_point(self, activity_id: str, point: RoutePoint) -> RoutePoint:
        self._enter("add_route_point")
        self._machine.check_open(self._activity(activity_id))
        stored = replace(point, id=self._new_id())
        self._route_points.setdefault(activity_id, []).append(stored)
        return stored

    async def remove_route_point(self, activity_id: str, point_id: str) -> None:
        self._enter("remove_route_point")
        self._machine.check_open(self._activity(activity_id))
        points = self._route_points.get(activity_id, [])
        remaining = [p for p in points if p.id != point_id]
        if len(remaining) == len(points):
            raise NotFound(f"route point {point_id} not found")
        self._route_points[activity_id] = remaining

    # -- Findings --

    async def add_finding(self, activity_id: str, finding: Finding) -> Finding:
        self._enter("add_finding")
        activity = self._activity(activity_id)
        self._machine.check_open(activity)
        fid = self._new_id()
        stored = replace(
            finding, id=fid, activity_id=activity_id,
            ranger_id=finding.ranger_id or activity.ranger_id,
            status=FindingStatus.REPORTED,
        )
        self._findings[fid] = stored
        return stored

    async def remove_finding(self, activity_id: str, finding_id: str) -> None:
        self._enter("remove_finding")
        self._machine.check_open(self._activity(activity_id))
        finding = self._finding(finding_id)
        if finding.activity_id != activity_id:
            raise NotFound(f"finding {finding_id} does not belong to activity {activity_id}")
        del self._findings[finding_id]

    async def list_findings(
        self, ranger_id: str | None = None, activity_id: str | None = None,
    ) -> list[Finding]:
        self._enter("list_findings")
        found = list(self._findings.values())
        if ranger_id is not None:
            found = [f for f in found if f.ranger_id == ranger_id]
        if activity_id is not None:
            found = [f for f in found if f.activity_id == activity_id]
        return found

    async def create_finding(self, finding: Finding) -> Finding:
        self._enter("create_finding")
        fid = self._new_id()
        stored = replace(finding, id=fid, status=FindingStatus.REPORTED)
        self._findings[fid] = stored
        return stored

    async def update_finding_status(self, finding_id: str, status: FindingStatus) -> Finding:
        self._enter("update_finding_status")
        updated = finding_rules.advance(self._finding(finding_id), status, self._now())
        self._findings[finding_id] = updated
        return updated

    async def add_follow_up(self, finding_id: str, entry: FollowUpEntry) -> Finding:
        self._enter("add_follow_up")
        updated = finding_rules.append_follow_up(self._finding(finding_id), entry)
        self._findings[finding_id] = updated
        return updated

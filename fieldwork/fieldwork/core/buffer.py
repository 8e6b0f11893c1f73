"""Field session buffer: data collected while one activity is in progress.

Findings and route points are IMMEDIATE: each add persists to the store first
and the buffer keeps the store-confirmed record (with its server id).
Evidence is AT_FINALIZE: it lives only here until the Finish bundle carries
it to the store, so it is lost if the session is abandoned or the process
dies.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import TYPE_CHECKING

import structlog

from fieldwork.core.models import Evidence, Finding, FinishBundle, RoutePoint

if TYPE_CHECKING:
    from fieldwork.store.base import ActivityStore

log = structlog.get_logger()


class FieldSessionBuffer:
    """Ordered findings, evidence and route points for one in-progress activity."""

    def __init__(
        self,
        activity_id: str,
        store: ActivityStore,
        route_points: tuple[RoutePoint, ...] | list[RoutePoint] = (),
    ) -> None:
        self.activity_id = activity_id
        self._store = store
        self.findings: list[Finding] = []
        self.evidence: list[Evidence] = []
        self.route_points: list[RoutePoint] = list(route_points)

    # -- Immediate durability: store first, then local --

    async def add_finding(self, finding: Finding) -> Finding:
        stored = await self._store.add_finding(self.activity_id, finding)
        self.findings.append(stored)
        log.info("finding_added", activity_id=self.activity_id, finding_id=stored.id)
        return stored

    async def remove_finding(self, finding_id: str) -> None:
        await self._store.remove_finding(self.activity_id, finding_id)
        self.findings = [f for f in self.findings if f.id != finding_id]

    async def add_route_point(self, point: RoutePoint) -> RoutePoint:
        stored = await self._store.add_route_point(self.activity_id, point)
        self.route_points.append(stored)
        log.info("route_point_added", activity_id=self.activity_id, point_id=stored.id,
                 total=len(self.route_points))
        return stored

    async def remove_route_point(self, point_id: str) -> None:
        await self._store.remove_route_point(self.activity_id, point_id)
        self.route_points = [p for p in self.route_points if p.id != point_id]

    # -- At-finalize durability: local only --

    def add_evidence(self, evidence: Evidence) -> Evidence:
        if not evidence.id:
            evidence = replace(evidence, id=uuid.uuid4().hex)
        self.evidence.append(evidence)
        return evidence

    def remove_evidence(self, evidence_id: str) -> None:
        self.evidence = [e for e in self.evidence if e.id != evidence_id]

    def seed_findings(self, findings: list[Finding]) -> None:
        """Replace local findings with the store's list (used after resumption)."""
        self.findings = list(findings)

    def clear(self) -> None:
        self.findings.clear()
        self.evidence.clear()
        self.route_points.clear()

    def finish_bundle(
        self,
        observations: str = "",
        findings: tuple[Finding, ...] | list[Finding] = (),
        evidence: tuple[Evidence, ...] | list[Evidence] = (),
        route_points: tuple[RoutePoint, ...] | list[RoutePoint] = (),
    ) -> FinishBundle:
        """Merge caller-supplied items with the buffer into one finalize bundle."""
        return build_bundle(
            observations,
            findings=[*self.findings, *findings],
            evidence=[*self.evidence, *evidence],
            route_points=[*self.route_points, *route_points],
        )


def _content_id(evidence: Evidence) -> str:
    # Stable across retries of the same Finish call.
    key = f"{evidence.url}|{evidence.timestamp}|{evidence.description}"
    return uuid.uuid5(uuid.NAMESPACE_URL, key).hex


def build_bundle(
    observations: str,
    findings: list[Finding],
    evidence: list[Evidence],
    route_points: list[RoutePoint],
) -> FinishBundle:
    """Split items into pending payloads and references to already-persisted ones.

    Items are de-duplicated by id so a retried Finish never carries the same
    evidence twice.
    """
    persisted_findings: list[str] = []
    pending_findings: list[Finding] = []
    for f in findings:
        if f.persisted:
            if f.id not in persisted_findings:
                persisted_findings.append(f.id)
        else:
            pending_findings.append(f)

    persisted_points: list[str] = []
    pending_points: list[RoutePoint] = []
    for p in route_points:
        if p.persisted:
            if p.id not in persisted_points:
                persisted_points.append(p.id)
        else:
            pending_points.append(p)

    seen: set[str] = set()
    pending_evidence: list[Evidence] = []
    for e in evidence:
        if not e.id:
            e = replace(e, id=_content_id(e))
        if e.id in seen:
            continue
        seen.add(e.id)
        pending_evidence.append(e)

    return FinishBundle(
        observations=observations,
        findings=tuple(pending_findings),
        evidence=tuple(pending_evidence),
        route_points=tuple(pending_points),
        persisted_finding_ids=tuple(persisted_findings),
        persisted_route_point_ids=tuple(persisted_points),
    )

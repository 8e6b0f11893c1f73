"""Tests for the field session buffer and finalize bundle assembly."""

from __future__ import annotations

import pytest

from fieldwork.core.buffer import FieldSessionBuffer, build_bundle
from fieldwork.core.errors import NetworkError
from fieldwork.core.models import (
    Coordinates,
    Durability,
    Evidence,
    EvidenceCategory,
    Finding,
    RoutePoint,
    Severity,
    Stamp,
)

START = Stamp(time="08:30", coordinates=Coordinates(14.6349, -90.5069))


def _finding(title="Basura acumulada", fid="") -> Finding:
    return Finding(
        title=title,
        description="",
        severity=Severity.MODERATE,
        coordinates=Coordinates(14.635, -90.507),
        timestamp="08:50",
        id=fid,
    )


def _evidence(url="https://photos.example.org/1.jpg", eid="") -> Evidence:
    return Evidence(url=url, description="Foto", category=EvidenceCategory.FAUNA, timestamp="09:00", id=eid)


@pytest.fixture
async def buffer(store):
    await store.start_activity("1", START)
    return FieldSessionBuffer("1", store)


def test_durability_classes():
    assert Finding.durability is Durability.IMMEDIATE
    assert RoutePoint.durability is Durability.IMMEDIATE
    assert Evidence.durability is Durability.AT_FINALIZE


@pytest.mark.asyncio
async def test_route_point_persisted_before_buffered(buffer, store):
    stored = await buffer.add_route_point(RoutePoint(lat=14.635, lng=-90.507, timestamp="08:45"))
    assert stored.persisted
    assert buffer.route_points == [stored]
    assert await store.list_route_points("1") == [stored]


@pytest.mark.asyncio
async def test_store_failure_leaves_buffer_untouched(buffer, store):
    store.fail_next("add_finding", NetworkError("unreachable"))
    with pytest.raises(NetworkError):
        await buffer.add_finding(_finding())
    assert buffer.findings == []


@pytest.mark.asyncio
async def test_remove_finding_removes_from_store_and_buffer(buffer, store):
    stored = await buffer.add_finding(_finding())
    await buffer.remove_finding(stored.id)
    assert buffer.findings == []
    assert await store.list_findings(activity_id="1") == []


@pytest.mark.asyncio
async def test_evidence_stays_local(buffer, store):
    held = buffer.add_evidence(_evidence())
    assert held.id
    assert buffer.evidence == [held]
    assert store.evidence_for("1") == []

    buffer.remove_evidence(held.id)
    assert buffer.evidence == []


@pytest.mark.asyncio
async def test_finish_bundle_references_persisted_items(buffer):
    point = await buffer.add_route_point(RoutePoint(lat=14.635, lng=-90.507, timestamp="08:45"))
    finding = await buffer.add_finding(_finding())
    held = buffer.add_evidence(_evidence())
    extra_point = RoutePoint(lat=14.636, lng=-90.508, timestamp="09:30")

    bundle = buffer.finish_bundle("Sin novedad", route_points=[point, extra_point])

    assert bundle.observations == "Sin novedad"
    assert bundle.persisted_route_point_ids == (point.id,)
    assert bundle.route_points == (extra_point,)
    assert bundle.persisted_finding_ids == (finding.id,)
    assert bundle.findings == ()
    assert bundle.evidence == (held,)


def test_build_bundle_gives_caller_evidence_a_stable_id():
    first = build_bundle("", [], [_evidence()], [])
    second = build_bundle("", [], [_evidence()], [])
    assert first.evidence[0].id
    assert first.evidence[0].id == second.evidence[0].id


def test_build_bundle_drops_duplicate_evidence():
    bundle = build_bundle("", [], [_evidence(eid="e1"), _evidence(eid="e1"), _evidence()], [])
    assert len(bundle.evidence) == 2


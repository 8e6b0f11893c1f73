"""Fieldwork engine: core internal data models.

These are plain dataclasses with no framework dependencies.
Store records (JSON) are converted to/from these at the boundary,
see ``fieldwork.store.codec``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Union


class Durability(enum.Enum):
    """When an entity collected in the field reaches the remote store."""

    IMMEDIATE = "immediate"        # persisted on capture
    AT_FINALIZE = "at_finalize"    # held locally, sent with Finish


class ActivityState(enum.Enum):
    SCHEDULED = "Programada"
    IN_PROGRESS = "En Progreso"
    COMPLETED = "Completada"


# Known activity kinds (tp_nombre in the remote catalog).
ACTIVITY_KINDS = (
    "Patrullaje de Control y Vigilancia",
    "Actividades de Prevención y Atención de Incendios Forestales",
    "Mantenimiento de Área Protegida",
    "Reforestación de Área Protegida",
    "Mantenimiento de Reforestación",
)


def is_patrol_kind(kind: str) -> bool:
    return "patrullaje" in kind.lower()


class Severity(enum.Enum):
    LOW = "Leve"
    MODERATE = "Moderado"
    SEVERE = "Grave"
    CRITICAL = "Crítico"


class FindingStatus(enum.Enum):
    REPORTED = "Reportado"
    INVESTIGATING = "En Investigación"
    IN_PROCESS = "En Proceso"
    RESOLVED = "Resuelto"


# Forward order of the finding workflow.
FINDING_STATUS_ORDER = (
    FindingStatus.REPORTED,
    FindingStatus.INVESTIGATING,
    FindingStatus.IN_PROCESS,
    FindingStatus.RESOLVED,
)


class EvidenceCategory(enum.Enum):
    FAUNA = "Fauna"
    FLORA = "Flora"
    INFRASTRUCTURE = "Infraestructura"
    IRREGULARITY = "Irregularidad"
    MAINTENANCE = "Mantenimiento"
    OTHER = "Otro"


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class Stamp:
    """Time and place recorded at a lifecycle transition."""
    time: str
    coordinates: Coordinates


# -- Activity state payloads (one variant per state) --

@dataclass(frozen=True)
class Scheduled:
    state = ActivityState.SCHEDULED


@dataclass(frozen=True)
class InProgress:
    start: Stamp
    state = ActivityState.IN_PROGRESS


@dataclass(frozen=True)
class Completed:
    start: Stamp
    end: Stamp
    state = ActivityState.COMPLETED


Lifecycle = Union[Scheduled, InProgress, Completed]


@dataclass(frozen=True)
class Activity:
    id: str
    code: str
    kind: str
    description: str
    scheduled_date: str
    ranger_id: str
    lifecycle: Lifecycle = field(default_factory=Scheduled)

    @property
    def state(self) -> ActivityState:
        return self.lifecycle.state

    @property
    def is_patrol(self) -> bool:
        return is_patrol_kind(self.kind)


@dataclass(frozen=True)
class RoutePoint:
    lat: float
    lng: float
    timestamp: str
    note: str = ""
    id: str = ""   # server-assigned; empty while pending

    durability = Durability.IMMEDIATE

    @property
    def persisted(self) -> bool:
        return bool(self.id)


@dataclass(frozen=True)
class FollowUpEntry:
    timestamp: str
    action: str
    actor: str
    notes: str = ""


@dataclass(frozen=True)
class Finding:
    title: str
    description: str
    severity: Severity
    coordinates: Coordinates
    timestamp: str
    activity_id: str | None = None   # None = independent finding
    status: FindingStatus = FindingStatus.REPORTED
    resolved_at: str | None = None
    follow_ups: tuple[FollowUpEntry, ...] = ()
    ranger_id: str = ""
    id: str = ""

    durability = Durability.IMMEDIATE

    @property
    def persisted(self) -> bool:
        return bool(self.id)

    @property
    def independent(self) -> bool:
        return self.activity_id is None


@dataclass(frozen=True)
class Evidence:
    url: str
    description: str
    category: EvidenceCategory
    timestamp: str
    coordinates: Coordinates | None = None
    id: str = ""   # client-generated, stable across Finish retries

    durability = Durability.AT_FINALIZE


@dataclass(frozen=True)
class FinishBundle:
    """Pending items carried by one finalize call."""
    observations: str = ""
    findings: tuple[Finding, ...] = ()
    evidence: tuple[Evidence, ...] = ()
    route_points: tuple[RoutePoint, ...] = ()
    persisted_finding_ids: tuple[str, ...] = ()
    persisted_route_point_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class ActiveSession:
    """Answer to "does this ranger have an activity in progress?"."""
    activity: Activity
    route_points: tuple[RoutePoint, ...] = ()

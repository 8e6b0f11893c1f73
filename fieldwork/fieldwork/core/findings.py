"""Finding workflow: Reportado -> En Investigación -> En Proceso -> Resuelto.

Status only moves forward (skipping ahead is allowed). Resuelto is terminal
and stamps the resolution time. Each status change appends an automatic
follow-up entry to the finding's log.
"""

from __future__ import annotations

from dataclasses import replace

from fieldwork.core.errors import IllegalTransition, ValidationError
from fieldwork.core.models import (
    FINDING_STATUS_ORDER,
    Finding,
    FindingStatus,
    FollowUpEntry,
)

SYSTEM_ACTOR = "Sistema"


def next_statuses(current: FindingStatus) -> list[FindingStatus]:
    idx = FINDING_STATUS_ORDER.index(current)
    return list(FINDING_STATUS_ORDER[idx + 1:])


def check_advance(finding: Finding, new_status: FindingStatus) -> None:
    if finding.status is FindingStatus.RESOLVED:
        raise IllegalTransition(f"finding {finding.id} is already resolved")
    if new_status not in next_statuses(finding.status):
        raise IllegalTransition(
            f"finding {finding.id} cannot move from {finding.status.value!r} to {new_status.value!r}"
        )


def advance(finding: Finding, new_status: FindingStatus, now: str) -> Finding:
    check_advance(finding, new_status)
    entry = FollowUpEntry(
        timestamp=now,
        action=f"Cambio de estado a: {new_status.value}",
        actor=SYSTEM_ACTOR,
        notes=f'El hallazgo cambió de estado de "{finding.status.value}" a "{new_status.value}"',
    )
    return replace(
        finding,
        status=new_status,
        resolved_at=now if new_status is FindingStatus.RESOLVED else finding.resolved_at,
        follow_ups=finding.follow_ups + (entry,),
    )


def validate_follow_up(action: str | None, notes: str | None) -> tuple[str, str]:
    if not action or not action.strip():
        raise ValidationError("follow-up action is required")
    if not notes or not notes.strip():
        raise ValidationError("follow-up notes are required")
    return action.strip(), notes.strip()


def check_follow_up(finding: Finding) -> None:
    if finding.status is FindingStatus.RESOLVED:
        raise IllegalTransition(f"finding {finding.id} is resolved; no further follow-ups")


def append_follow_up(finding: Finding, entry: FollowUpEntry) -> Finding:
    check_follow_up(finding)
    return replace(finding, follow_ups=finding.follow_ups + (entry,))

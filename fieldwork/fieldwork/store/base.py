"""Remote activity store interface (port) and the bearer-token collaborator."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

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


class TokenProvider(Protocol):
    """Port: supplies the bearer token of the signed-in ranger (None when signed out)."""

    def get_token(self) -> str | None: ...


class StaticTokenProvider:
    """TokenProvider holding a single token, e.g. from configuration."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token or None

    def get_token(self) -> str | None:
        return self._token

    def set_token(self, token: str | None) -> None:
        self._token = token or None


class ActivityStore(Protocol):
    """Port: persists activities, route points, findings and evidence.

    Implementations raise ``fieldwork.core.errors`` exceptions:
    SessionExpired, IllegalTransition, ValidationError, NotFound,
    NetworkError (incl. MalformedRecord) and Timeout.
    """

    async def fetch_active_in_progress(self, ranger_id: str) -> ActiveSession | None: ...

    async def list_activities(self, ranger_id: str) -> list[Activity]: ...

    async def get_activity(self, activity_id: str) -> Activity: ...

    async def start_activity(self, activity_id: str, stamp: Stamp) -> Activity: ...

    async def finish_activity(self, activity_id: str, stamp: Stamp, bundle: FinishBundle) -> Activity: ...

    async def list_route_points(self, activity_id: str) -> list[RoutePoint]: ...

    async def add_route_point(self, activity_id: str, point: RoutePoint) -> RoutePoint: ...

    async def remove_route_point(self, activity_id: str, point_id: str) -> None: ...

    async def add_finding(self, activity_id: str, finding: Finding) -> Finding: ...

    async def remove_finding(self, activity_id: str, finding_id: str) -> None: ...

    async def list_findings(
        self, ranger_id: str | None = None, activity_id: str | None = None,
    ) -> list[Finding]: ...

    async def create_finding(self, finding: Finding) -> Finding: ...

    async def update_finding_status(self, finding_id: str, status: FindingStatus) -> Finding: ...

    async def add_follow_up(self, finding_id: str, entry: FollowUpEntry) -> Finding: ...

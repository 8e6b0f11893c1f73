"""Activity lifecycle: Scheduled -> InProgress -> Completed.

No transition skips a state and none is reversible. Validation here is
purely local so that callers can fail fast before any network call.
"""

from __future__ import annotations

import math
import re
from datetime import datetime
from dataclasses import replace

from fieldwork.core.errors import IllegalTransition, ValidationError
from fieldwork.core.geo import valid_coordinates
from fieldwork.core.models import (
    Activity,
    ActivityState,
    Completed,
    Coordinates,
    InProgress,
    Stamp,
)

_CLOCK_TIME = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")


def validate_time(value: str | None, field_name: str) -> str:
    """Accept ``HH:MM[:SS]`` or an ISO-8601 datetime. Returns the stripped value."""
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    value = str(value).strip()
    if _CLOCK_TIME.match(value):
        return value
    try:
        datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{field_name} must be HH:MM or an ISO datetime, got {value!r}") from None
    return value


def validate_coordinates(lat: float | None, lng: float | None, what: str) -> Coordinates:
    """Both components are required; a missing one is never defaulted."""
    if lat is None or lng is None:
        raise ValidationError(f"{what} requires both latitude and longitude")
    try:
        coords = Coordinates(lat=float(lat), lng=float(lng))
    except (TypeError, ValueError):
        raise ValidationError(f"{what} coordinates must be numbers") from None
    if not (math.isfinite(coords.lat) and math.isfinite(coords.lng)) or not valid_coordinates(coords):
        raise ValidationError(f"{what} coordinates out of range: {coords.lat}, {coords.lng}")
    return coords


def validate_stamp(time: str | None, lat: float | None, lng: float | None, what: str) -> Stamp:
    return Stamp(
        time=validate_time(time, f"{what} time"),
        coordinates=validate_coordinates(lat, lng, what),
    )


class ActivityStateMachine:
    """Guards the two lifecycle transitions of an activity."""

    def check_start(self, activity: Activity) -> None:
        if activity.state is not ActivityState.SCHEDULED:
            raise IllegalTransition(
                f"activity {activity.id} cannot start from state {activity.state.value!r}"
            )

    def check_finish(self, activity: Activity) -> None:
        if activity.state is not ActivityState.IN_PROGRESS:
            raise IllegalTransition(
                f"activity {activity.id} cannot finish from state {activity.state.value!r}"
            )

    def check_open(self, activity: Activity) -> None:
        """Field data can only be attached while the activity is in progress."""
        if activity.state is not ActivityState.IN_PROGRESS:
            raise IllegalTransition(
                f"activity {activity.id} is not in progress ({activity.state.value!r})"
            )

    def started(self, activity: Activity, stamp: Stamp) -> Activity:
        self.check_start(activity)
        return replace(activity, lifecycle=InProgress(start=stamp))

    def finished(self, activity: Activity, stamp: Stamp) -> Activity:
        self.check_finish(activity)
        if not isinstance(activity.lifecycle, InProgress):
            raise IllegalTransition(f"activity {activity.id} has no start stamp")
        return replace(activity, lifecycle=Completed(start=activity.lifecycle.start, end=stamp))

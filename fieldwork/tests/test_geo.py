"""Tests for route distance helpers."""

from __future__ import annotations

import pytest

from fieldwork.core.geo import haversine_m, path_length_km
from fieldwork.core.models import RoutePoint


def _pt(lat, lng) -> RoutePoint:
    return RoutePoint(lat=lat, lng=lng, timestamp="08:00")


def test_haversine_one_degree_of_latitude():
    assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_195, rel=1e-3)


def test_haversine_same_point_is_zero():
    assert haversine_m(14.6, -90.5, 14.6, -90.5) == 0.0


def test_path_length_sums_consecutive_legs():
    points = [_pt(0.0, 0.0), _pt(0.0, 0.01), _pt(0.0, 0.02)]
    single_leg = haversine_m(0.0, 0.0, 0.0, 0.01)
    assert path_length_km(points) == pytest.approx(round(2 * single_leg / 1000, 3))


def test_path_length_of_short_routes():
    assert path_length_km([]) == 0.0
    assert path_length_km([_pt(14.6, -90.5)]) == 0.0

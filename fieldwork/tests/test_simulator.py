"""Tests for the patrol simulator helpers."""

from __future__ import annotations

import random

from fieldwork.core.geo import haversine_m
from tools.simulator.simulate_patrol import (
    CATEGORIES,
    SEVERITIES,
    SimRanger,
    evidence_payload,
    finding_payload,
    move_ranger,
)


def test_move_ranger_walks_at_walking_speed():
    rng = random.Random(1)
    ranger = SimRanger(lat=14.6349, lng=-90.5069, bearing=0.0, speed_mps=1.0)
    before = (ranger.lat, ranger.lng)

    move_ranger(ranger, 30.0, rng)

    moved = haversine_m(before[0], before[1], ranger.lat, ranger.lng)
    assert 0.5 * 30 * 0.99 <= moved <= 2.0 * 30 * 1.01
    assert 0.5 <= ranger.speed_mps <= 2.0


def test_payloads_use_known_values():
    rng = random.Random(2)
    ranger = SimRanger(lat=14.6, lng=-90.5, bearing=90.0, speed_mps=1.0)

    finding = finding_payload(ranger, rng)
    evidence = evidence_payload(ranger, rng, 3)

    assert finding["severity"] in SEVERITIES
    assert (finding["lat"], finding["lng"]) == (14.6, -90.5)
    assert evidence["category"] in CATEGORIES
    assert evidence["url"].endswith("0003.jpg")

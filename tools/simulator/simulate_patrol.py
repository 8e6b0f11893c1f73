#!/usr/bin/env python3
"""Fieldwork patrol simulator.

Walks a simulated ranger through one patrol against a running Fieldwork
service: sign in, start the activity, capture GPS route points with the
occasional finding and photo, then finish.

Usage:
    # One patrol of 40 route points near Guatemala City
    python -m tools.simulator.simulate_patrol --server http://localhost:8000 \
        --ranger 7 --activity 1 --points 40

    # Fast run, new finding roughly every 5 points
    python -m tools.simulator.simulate_patrol --server http://localhost:8000 \
        --ranger 7 --activity 1 --interval 0 --finding-every 5
"""

from __future__ import annotations

import argparse
import asyncio
import math
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

SEVERITIES = ["Leve", "Moderado", "Grave", "Crítico"]
CATEGORIES = ["Fauna", "Flora", "Infraestructura", "Irregularidad", "Mantenimiento", "Otro"]
FINDING_TITLES = [
    "Tala ilegal",
    "Basura acumulada",
    "Rastro de fauna",
    "Cerco dañado",
    "Quema no autorizada",
]


@dataclass
class SimRanger:
    lat: float
    lng: float
    bearing: float
    speed_mps: float
    points_sent: int = 0
    findings_sent: int = 0
    evidence_held: int = 0
    errors: int = 0


def move_ranger(ranger: SimRanger, dt_seconds: float, rng: random.Random) -> None:
    """Move the ranger along its bearing, with random turns at walking speed."""
    ranger.bearing = (ranger.bearing + rng.uniform(-25, 25)) % 360
    ranger.speed_mps = max(0.5, min(2.0, ranger.speed_mps + rng.uniform(-0.2, 0.2)))

    distance_m = ranger.speed_mps * dt_seconds
    bearing_rad = math.radians(ranger.bearing)

    # Approximate: 1 degree latitude = 111,000 m
    ranger.lat += (distance_m * math.cos(bearing_rad)) / 111_000
    ranger.lng += (distance_m * math.sin(bearing_rad)) / (111_000 * math.cos(math.radians(ranger.lat)))


def clock_time() -> str:
    return datetime.now(timezone.utc).strftime("%H:%M")


def route_point_payload(ranger: SimRanger) -> dict:
    return {
        "lat": round(ranger.lat, 6),
        "lng": round(ranger.lng, 6),
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
    }


def finding_payload(ranger: SimRanger, rng: random.Random) -> dict:
    return {
        "title": rng.choice(FINDING_TITLES),
        "description": "Observado durante el patrullaje simulado",
        "severity": rng.choices(SEVERITIES, weights=[40, 35, 20, 5])[0],
        "lat": round(ranger.lat, 6),
        "lng": round(ranger.lng, 6),
    }


def evidence_payload(ranger: SimRanger, rng: random.Random, seq: int) -> dict:
    return {
        "url": f"https://photos.example.org/patrol/{seq:04d}.jpg",
        "description": "Foto de campo",
        "category": rng.choice(CATEGORIES),
        "lat": round(ranger.lat, 6),
        "lng": round(ranger.lng, 6),
    }


async def _post(client: httpx.AsyncClient, url: str, payload: dict, ranger: SimRanger) -> dict | None:
    try:
        resp = await client.post(url, json=payload)
    except httpx.RequestError as exc:
        ranger.errors += 1
        print(f"  request failed: {exc}")
        return None
    body = resp.json()
    if not body.get("ok"):
        ranger.errors += 1
        print(f"  {url} -> {resp.status_code} {body.get('error')}")
        return None
    return body


async def run_patrol(args: argparse.Namespace) -> int:
    """Run one patrol end to end. Returns the number of failed calls."""
    rng = random.Random(args.seed)
    center_lat, center_lng = args.center
    ranger = SimRanger(
        lat=center_lat,
        lng=center_lng,
        bearing=rng.uniform(0, 360),
        speed_mps=rng.uniform(0.8, 1.5),
    )
    base = f"{args.server}/api/v1"

    print(f"Starting patrol: ranger {args.ranger}, activity {args.activity}")
    print(f"  Center: {center_lat:.4f}, {center_lng:.4f}")
    print(f"  Route points: {args.points}")
    print(f"  Server: {args.server}")
    print()

    start = time.monotonic()
    async with httpx.AsyncClient(timeout=10.0) as client:
        await _post(client, f"{base}/session/resume", {"ranger_id": args.ranger}, ranger)

        started = await _post(client, f"{base}/activities/{args.activity}/start", {
            "time": clock_time(), "lat": ranger.lat, "lng": ranger.lng,
        }, ranger)
        if started is None:
            return ranger.errors

        session = f"{base}/session/{args.activity}"
        for i in range(args.points):
            move_ranger(ranger, args.step_seconds, rng)
            if await _post(client, f"{session}/route-points", route_point_payload(ranger), ranger):
                ranger.points_sent += 1
            if args.finding_every and (i + 1) % args.finding_every == 0:
                if await _post(client, f"{session}/findings", finding_payload(ranger, rng), ranger):
                    ranger.findings_sent += 1
                if await _post(client, f"{session}/evidence",
                               evidence_payload(ranger, rng, ranger.evidence_held + 1), ranger):
                    ranger.evidence_held += 1
            if args.interval:
                await asyncio.sleep(args.interval)

        finished = await _post(client, f"{base}/activities/{args.activity}/finish", {
            "time": clock_time(),
            "lat": ranger.lat,
            "lng": ranger.lng,
            "observations": "Patrullaje simulado completado",
        }, ranger)

        elapsed = time.monotonic() - start
        print(f"\nPatrol {'completed' if finished else 'NOT completed'} in {elapsed:.1f}s")
        print(f"  Route points sent: {ranger.points_sent}")
        print(f"  Findings sent: {ranger.findings_sent}")
        print(f"  Evidence held until finish: {ranger.evidence_held}")
        print(f"  Errors: {ranger.errors}")

        resp = await client.get(f"{base}/activities/{args.activity}/route")
        if resp.status_code == 200:
            points = resp.json()["value"]
            print(f"  Route stored: {len(points)} points")

        resp = await client.get(f"{base}/stats")
        if resp.status_code == 200:
            stats = resp.json()
            print("\nService stats:")
            print(f"  Activities finished: {stats['activities_finished']}")
            print(f"  Evidence persisted: {stats['evidence_persisted']}")
            print(f"  Cache hits/misses: {stats['cache']['hits']}/{stats['cache']['misses']}")

    return ranger.errors


def main():
    parser = argparse.ArgumentParser(description="Fieldwork patrol simulator")
    parser.add_argument("--server", default="http://localhost:8000", help="Service URL")
    parser.add_argument("--ranger", default="1", help="Ranger id to sign in as")
    parser.add_argument("--activity", default="1", help="Scheduled patrol activity id")
    parser.add_argument("--points", type=int, default=40, help="Route points to capture")
    parser.add_argument("--step-seconds", type=float, default=30.0,
                        help="Simulated walking time between route points")
    parser.add_argument("--interval", type=float, default=0.2,
                        help="Real delay between route points (seconds)")
    parser.add_argument("--finding-every", type=int, default=10,
                        help="Report a finding and a photo every N points (0 = never)")
    parser.add_argument("--center", type=str, default="14.6349,-90.5069",
                        help="Start lat,lng (default: Guatemala City)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")

    args = parser.parse_args()

    lat, lng = args.center.split(",")
    args.center = (float(lat), float(lng))

    errors = asyncio.run(run_patrol(args))
    raise SystemExit(1 if errors else 0)


if __name__ == "__main__":
    main()

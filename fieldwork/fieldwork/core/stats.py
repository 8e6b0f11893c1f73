"""Engine statistics.

In-memory counters of transitions, field captures and failures, plus the
time of the last successful store call. No framework dependencies.
"""

from __future__ import annotations

import threading
import time
from collections import Counter


class EngineStats:
    """Thread-safe counters for the field session engine."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()

        # Counters
        self.activities_started: int = 0
        self.activities_finished: int = 0
        self.route_points_captured: int = 0
        self.findings_captured: int = 0
        self.evidence_captured: int = 0
        self.evidence_persisted: int = 0
        self.sessions_resumed: int = 0
        self.sessions_abandoned: int = 0
        self.session_expirations: int = 0

        # Failures by error kind (validation_error, illegal_transition, ...)
        self._failures: Counter[str] = Counter()
        self._last_store_success: float | None = None

    def record_started(self) -> None:
        with self._lock:
            self.activities_started += 1

    def record_finished(self, evidence_count: int) -> None:
        with self._lock:
            self.activities_finished += 1
            self.evidence_persisted += evidence_count

    def record_route_point(self) -> None:
        with self._lock:
            self.route_points_captured += 1

    def record_finding(self) -> None:
        with self._lock:
            self.findings_captured += 1

    def record_evidence(self) -> None:
        with self._lock:
            self.evidence_captured += 1

    def record_resumed(self) -> None:
        with self._lock:
            self.sessions_resumed += 1

    def record_abandoned(self) -> None:
        with self._lock:
            self.sessions_abandoned += 1

    def record_session_expired(self) -> None:
        with self._lock:
            self.session_expirations += 1

    def record_failure(self, kind: str) -> None:
        with self._lock:
            self._failures[kind] += 1

    def record_store_success(self) -> None:
        with self._lock:
            self._last_store_success = time.time()

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        with self._lock:
            last_ok = self._last_store_success
            return {
                "uptime_seconds": round(time.time() - self._started_at, 1),
                "activities_started": self.activities_started,
                "activities_finished": self.activities_finished,
                "route_points_captured": self.route_points_captured,
                "findings_captured": self.findings_captured,
                "evidence_captured": self.evidence_captured,
                "evidence_persisted": self.evidence_persisted,
                "sessions_resumed": self.sessions_resumed,
                "sessions_abandoned": self.sessions_abandoned,
                "session_expirations": self.session_expirations,
                "failures": dict(self._failures),
                "seconds_since_store_success": (
                    round(time.time() - last_ok, 1) if last_ok is not None else None
                ),
            }

"""
SmartStance — Metrics Aggregator

Owns the session's MetricsSnapshot behind a narrow write API (one method
per producer) and a single read API (`snapshot()`).

Each field has exactly one writer. A lock guards every write and read so a
poller on another thread never sees a torn value; there is no cross-field
atomicity. Once sealed (report synthesis has begun) writes are ignored.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Dict, Optional

from ..core.models import DebugView, MetricsSnapshot
from .geometry import clamp

logger = logging.getLogger("smartstance.aggregator")


def _score(value: float) -> int:
    return round(clamp(value))


class MetricsAggregator:

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics = MetricsSnapshot()
        self._debug = DebugView()
        self._sealed = False
        self.rejected_writes: int = 0

    @property
    def sealed(self) -> bool:
        return self._sealed

    def _writable(self, what: str) -> bool:
        if self._sealed:
            self.rejected_writes += 1
            logger.debug(f"Write to sealed snapshot ignored: {what}")
            return False
        return True

    # ── Write API ───────────────────────────────────────────────────────

    def record_posture(self, delta: float) -> None:
        with self._lock:
            if self._writable("posture"):
                self._debug.posture = delta

    def record_hand_activity(self, activity: float) -> None:
        with self._lock:
            if self._writable("hand_activity"):
                self._debug.hand = activity
                self._metrics.hand_activity = _score(activity)

    def record_gaze(self, yaw: float, pitch: float, reading_score: float, stability: float) -> None:
        with self._lock:
            if self._writable("gaze"):
                self._debug.yaw = yaw
                self._debug.pitch = pitch
                self._metrics.reading_score = _score(reading_score)
                self._metrics.gaze_stability = _score(stability)

    def record_smile(self, score: float) -> None:
        with self._lock:
            if self._writable("smile"):
                self._metrics.smile_score = _score(score)

    def record_loudness(self, loudness: float) -> None:
        with self._lock:
            if self._writable("loudness"):
                self._metrics.loudness = _score(loudness)

    def record_speech(
        self,
        words: int,
        wpm: int,
        filler_count: int,
        filler_breakdown: Optional[Dict[str, int]] = None,
    ) -> None:
        with self._lock:
            if self._writable("speech"):
                self._metrics.total_words = max(0, int(words))
                self._metrics.wpm = max(0, int(wpm))
                self._metrics.filler_count = max(0, int(filler_count))
                self._metrics.filler_breakdown = dict(filler_breakdown or {})

    # ── Read API ────────────────────────────────────────────────────────

    def snapshot(self) -> MetricsSnapshot:
        """A private copy; mutating it never touches the live record."""
        with self._lock:
            return copy.deepcopy(self._metrics)

    def debug_view(self) -> DebugView:
        with self._lock:
            return copy.copy(self._debug)

    @property
    def words(self) -> int:
        return self._metrics.total_words

    # ── Lifecycle ───────────────────────────────────────────────────────

    def seal(self) -> MetricsSnapshot:
        """Freeze the record for report synthesis and return the final copy."""
        with self._lock:
            self._sealed = True
            return copy.deepcopy(self._metrics)

    def reset(self) -> None:
        with self._lock:
            self._metrics = MetricsSnapshot()
            self._debug = DebugView()
            self._sealed = False
            self.rejected_writes = 0

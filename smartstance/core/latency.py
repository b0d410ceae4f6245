"""
SmartStance — Session Timeline Tracer

Records wall-clock timestamps for session milestones:
  calibration_started → live_started → first_frame → first_transcript
  → first_alert → report_ready

Computes and logs deltas. Single source of truth for timing diagnostics.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger("smartstance.latency")

_MILESTONES = (
    "calibration_started", "live_started", "first_frame",
    "first_transcript", "first_alert", "report_ready",
)


@dataclass
class SessionTimeline:
    """Record of session milestones (wall-clock seconds, 0 = not reached)."""

    session_id: str = ""

    calibration_started: float = 0.0
    live_started: float = 0.0
    first_frame: float = 0.0
    first_transcript: float = 0.0
    first_alert: float = 0.0
    report_ready: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"session_id": self.session_id}
        for name in _MILESTONES:
            ts = getattr(self, name)
            if ts > 0:
                d[name] = ts
        d["deltas"] = self.deltas()
        return d

    def deltas(self) -> Dict[str, Optional[float]]:
        """Deltas between milestones (milliseconds)."""
        def _delta(a: float, b: float) -> Optional[float]:
            if a > 0 and b > 0:
                return round((b - a) * 1000, 1)
            return None

        return {
            "calibration_ms": _delta(self.calibration_started, self.live_started),
            "live_to_first_frame_ms": _delta(self.live_started, self.first_frame),
            "live_to_first_transcript_ms": _delta(self.live_started, self.first_transcript),
            "live_to_first_alert_ms": _delta(self.live_started, self.first_alert),
            "live_to_report_ms": _delta(self.live_started, self.report_ready),
        }


class TimelineTracer:
    """
    Marks each milestone once and logs it.

    Usage:
        tracer = TimelineTracer("session-abc")
        tracer.mark("calibration_started")
        tracer.mark("live_started")
    """

    def __init__(self, session_id: str) -> None:
        self._timeline = SessionTimeline(session_id=session_id)

    @property
    def timeline(self) -> SessionTimeline:
        return self._timeline

    def mark(self, milestone: str) -> None:
        if milestone not in _MILESTONES:
            raise ValueError(f"Unknown milestone: {milestone}")
        if getattr(self._timeline, milestone) > 0:
            return  # Already marked
        setattr(self._timeline, milestone, time.time())
        logger.info(f"[{self._timeline.session_id}] TIMELINE {milestone}")

    def reset(self) -> None:
        self._timeline = SessionTimeline(session_id=self._timeline.session_id)

    def summary(self) -> Dict[str, Any]:
        return self._timeline.to_dict()

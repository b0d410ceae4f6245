"""
SmartStance — Data Models

Dataclasses for every piece of data flowing through the engine.
Landmark frames are ephemeral; the snapshot and telemetry live for a session.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Mapping, Optional, Sequence


# ---------------------------------------------------------------------------
# Landmarks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LandmarkPoint:
    """A keypoint normalised to [0, 1] relative to the frame."""
    x: float
    y: float
    z: Optional[float] = None

    @classmethod
    def parse(cls, raw: Any) -> Optional["LandmarkPoint"]:
        """Accepts {"x", "y", "z"} mappings or [x, y(, z)] sequences."""
        if raw is None:
            return None
        if isinstance(raw, LandmarkPoint):
            return raw
        if isinstance(raw, Mapping):
            z = raw.get("z")
            return cls(float(raw["x"]), float(raw["y"]), None if z is None else float(z))
        if len(raw) >= 3:
            return cls(float(raw[0]), float(raw[1]), float(raw[2]))
        return cls(float(raw[0]), float(raw[1]))


@dataclass(frozen=True)
class LandmarkFrame:
    """Index-addressed landmarks for one instant (MediaPipe Holistic indexing)."""
    points: Sequence[Optional[LandmarkPoint]] = ()

    def point(self, index: int) -> Optional[LandmarkPoint]:
        if 0 <= index < len(self.points):
            return self.points[index]
        return None

    def __len__(self) -> int:
        return len(self.points)

    @classmethod
    def parse(cls, raw: Optional[Sequence[Any]]):
        if not raw:
            return None
        return cls(tuple(LandmarkPoint.parse(p) for p in raw))


class PoseFrame(LandmarkFrame):
    """Body landmarks (33-point pose topology)."""


class FaceFrame(LandmarkFrame):
    """Face mesh landmarks (468-point topology)."""


# ---------------------------------------------------------------------------
# Calibration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Baseline:
    """Neutral-pose reference, frozen when calibration ends."""
    shoulder_height: float = 0.0
    nose_offset_x: float = 0.0
    nose_offset_y: float = 0.0
    face_seeded: bool = False
    samples: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

@dataclass
class MetricsSnapshot:
    """The shared current-value record of all derived metrics."""
    wpm: int = 0
    loudness: int = 0
    reading_score: int = 0
    nervousness: int = 0          # placeholder, never written
    smile_score: int = 0
    hand_activity: int = 0
    total_words: int = 0
    filler_count: int = 0
    filler_breakdown: Dict[str, int] = field(default_factory=dict)
    gaze_stability: int = 100

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DebugView:
    """Low-frequency diagnostic values shown next to the HUD."""
    posture: float = 0.0
    yaw: float = 0.0
    pitch: float = 0.0
    hand: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "posture": round(self.posture, 3),
            "yaw": round(self.yaw, 2),
            "pitch": round(self.pitch, 2),
            "hand": round(self.hand),
        }


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AlertRequest:
    """Side effect returned by an analyzer; applied by the dispatcher."""
    key: str
    cooldown_ms: float
    message: str = ""

    @property
    def text(self) -> str:
        return self.message or self.key


@dataclass
class Alert:
    key: str
    message: str
    raised_at: float            # ms
    expires_at: float           # ms

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Speech
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SpeechSegment:
    transcript: str = ""
    is_final: bool = False


@dataclass(frozen=True)
class SpeechEvent:
    """One recognizer callback: results from result_index on are new or revised."""
    result_index: int = 0
    results: Sequence[SpeechSegment] = ()

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> "SpeechEvent":
        results = tuple(
            SpeechSegment(
                transcript=str(r.get("transcript", "")),
                is_final=bool(r.get("is_final", r.get("isFinal", False))),
            )
            for r in raw.get("results", ())
        )
        index = raw.get("result_index", raw.get("resultIndex", 0))
        return cls(result_index=int(index or 0), results=results)


@dataclass
class TranscriptState:
    finalized: str = ""
    interim: str = ""

    @property
    def combined(self) -> str:
        return (self.finalized + self.interim).strip()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionReport:
    grade: str = "B"
    title: str = ""
    summary: str = ""
    tips: tuple[str, ...] = ()
    source: str = "local"       # "local" | "llm"

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["tips"] = list(self.tips)
        return d


@dataclass(frozen=True)
class ReportBundle:
    """What the document renderer receives, once, at session end."""
    report: SessionReport
    transcript: str
    metrics: MetricsSnapshot
    duration_minutes: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report": self.report.to_dict(),
            "transcript": self.transcript,
            "metrics": self.metrics.to_dict(),
            "duration_minutes": self.duration_minutes,
        }


# ---------------------------------------------------------------------------
# Session telemetry
# ---------------------------------------------------------------------------

@dataclass
class SessionTelemetry:
    """Per-session counters — never crashes the session."""
    session_id: str = ""
    phase: str = "init"
    frames_received: int = 0
    frames_dropped: int = 0
    calibration_frames: int = 0
    frames_analysed: int = 0
    speech_events: int = 0
    audio_ticks: int = 0
    alerts_raised: int = 0
    listener_restarts: int = 0
    report_source: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

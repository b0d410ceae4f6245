"""
SmartStance — Face Analyzer

Per live frame with a detected face:
  • yaw / pitch drift of the nose against the calibrated baseline
  • reading score (looking down at notes)
  • gaze stability from short-horizon yaw variance
  • binary smile score, with an occasional soft "smile" nudge
"""

from __future__ import annotations

import random
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional

import numpy as np

from ..core.config import face_cfg, FaceConfig
from ..core.models import AlertRequest, Baseline, FaceFrame
from .geometry import clamp, nose_offsets, smile_ratio

MSG_TURN_TO_CAMERA = "FACE: TURN TO CAMERA"
MSG_READING_NOTES = "FACE: READING NOTES?"
MSG_HEAD_MOVING = "FOCUS: HEAD MOVING"
MSG_SMILE = "REMEMBER TO SMILE"

# HUD colour hints
ALERT_COLOR = "#ff2a2a"
NOMINAL_COLOR = "#00f3ff"


@dataclass
class FaceReading:
    yaw_drift: float = 0.0
    pitch_drift: float = 0.0
    reading_score: int = 100
    gaze_stability: int = 100
    smile_score: Optional[int] = None
    hud_color: str = NOMINAL_COLOR
    alerts: List[AlertRequest] = field(default_factory=list)


def head_variance(samples: List[float]) -> float:
    """
    Sum of squared deviations from the mean. Deliberately NOT divided by N:
    the stability thresholds were tuned against this raw spread.
    """
    arr = np.asarray(samples, dtype=np.float64)
    return float(np.sum((arr - arr.mean()) ** 2))


class FaceAnalyzer:

    def __init__(self, cfg: FaceConfig = face_cfg, rng: Optional[random.Random] = None) -> None:
        self._cfg = cfg
        self._rng = rng or random.Random()
        self._yaw_history: Deque[float] = deque(maxlen=cfg.yaw_history)

    @property
    def yaw_history(self) -> List[float]:
        return list(self._yaw_history)

    def reset(self) -> None:
        self._yaw_history.clear()

    def _stability(self) -> int:
        if len(self._yaw_history) <= self._cfg.min_stability_samples:
            return 100
        variance = head_variance(list(self._yaw_history))
        return round(clamp(100 - variance * self._cfg.stability_gain))

    def analyze(self, face: FaceFrame, baseline: Baseline, words_spoken: int) -> Optional[FaceReading]:
        cfg = self._cfg
        offsets = nose_offsets(face)
        if offsets is None:
            return None
        nose_x, nose_y = offsets

        reading = FaceReading()
        reading.yaw_drift = abs(nose_x - baseline.nose_offset_x)
        # Signed: only looking down (positive) matters
        reading.pitch_drift = nose_y - baseline.nose_offset_y
        reading.reading_score = round(clamp(100 - round(reading.pitch_drift * cfg.reading_gain)))

        self._yaw_history.append(nose_x)
        reading.gaze_stability = self._stability()

        yaw_off = reading.yaw_drift > cfg.yaw_limit
        pitch_off = reading.pitch_drift > cfg.pitch_limit
        if yaw_off:
            reading.alerts.append(
                AlertRequest(MSG_TURN_TO_CAMERA, cfg.drift_cooldown_ms, MSG_TURN_TO_CAMERA)
            )
        if pitch_off:
            reading.alerts.append(
                AlertRequest(MSG_READING_NOTES, cfg.drift_cooldown_ms, MSG_READING_NOTES)
            )
        if reading.gaze_stability < cfg.unstable_below and words_spoken > cfg.unstable_min_words:
            reading.alerts.append(
                AlertRequest(MSG_HEAD_MOVING, cfg.unstable_cooldown_ms, MSG_HEAD_MOVING)
            )

        ratio = smile_ratio(face)
        if ratio is not None:
            reading.smile_score = 100 if ratio > cfg.smile_ratio else 0
            if ratio < cfg.frown_ratio and words_spoken > cfg.smile_min_words:
                # Soft nudge: roughly one evaluated frame in a hundred
                if self._rng.random() < cfg.smile_nudge_probability:
                    reading.alerts.append(
                        AlertRequest(MSG_SMILE, cfg.smile_cooldown_ms, MSG_SMILE)
                    )

        reading.hud_color = ALERT_COLOR if (yaw_off or pitch_off) else NOMINAL_COLOR
        return reading

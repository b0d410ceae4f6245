"""
SmartStance — Body Analyzer

Per live frame: shoulder drop against the baseline (posture) and left-wrist
horizontal speed (hand activity). Returns readings plus alert requests; the
session engine writes the metrics and dispatches the alerts.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional

from ..core.config import body_cfg, BodyConfig
from ..core.models import AlertRequest, Baseline, LandmarkPoint, PoseFrame
from .geometry import LEFT_WRIST, clamp, shoulder_height

MSG_SIT_UP = "POSTURE: SIT UP!"
MSG_HANDS_STIFF = "HANDS: TOO STIFF"
MSG_HANDS_DISTRACTING = "HANDS: DISTRACTING"


@dataclass
class BodyReading:
    posture_delta: Optional[float] = None
    hand_activity: Optional[float] = None
    alerts: List[AlertRequest] = field(default_factory=list)


class BodyAnalyzer:

    def __init__(self, cfg: BodyConfig = body_cfg) -> None:
        self._cfg = cfg
        # Most recent wrist position first
        self._hand_history: Deque[LandmarkPoint] = deque(maxlen=cfg.hand_history)

    @property
    def hand_history(self) -> List[LandmarkPoint]:
        return list(self._hand_history)

    def reset(self) -> None:
        self._hand_history.clear()

    def analyze(self, pose: PoseFrame, baseline: Baseline, words_spoken: int) -> BodyReading:
        cfg = self._cfg
        reading = BodyReading()

        height = shoulder_height(pose)
        if height is not None:
            reading.posture_delta = height - baseline.shoulder_height
            # Image y grows downward: positive delta means the shoulders dropped
            if reading.posture_delta > cfg.slouch_delta:
                reading.alerts.append(
                    AlertRequest(MSG_SIT_UP, cfg.slouch_cooldown_ms, MSG_SIT_UP)
                )

        wrist = pose.point(LEFT_WRIST)
        if wrist is not None:
            prev_x = self._hand_history[0].x if self._hand_history else wrist.x
            displacement = abs(wrist.x - prev_x)
            if displacement < cfg.hand_dead_zone:
                displacement = 0.0
            self._hand_history.appendleft(wrist)

            activity = clamp(displacement * cfg.hand_gain)
            reading.hand_activity = activity

            if activity < cfg.stiff_below and words_spoken > cfg.stiff_min_words:
                reading.alerts.append(
                    AlertRequest(MSG_HANDS_STIFF, cfg.hand_cooldown_ms, MSG_HANDS_STIFF)
                )
            if activity > cfg.distracting_above:
                reading.alerts.append(
                    AlertRequest(MSG_HANDS_DISTRACTING, cfg.hand_cooldown_ms, MSG_HANDS_DISTRACTING)
                )

        return reading

"""
SmartStance — Calibration

Builds the per-session neutral-posture baseline from the countdown frames.

Each sample is folded in with a two-point running mean, so the most recent
frames weigh the most and early jitter fades out quickly. The first sample
seeds the value directly.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..core.models import Baseline, FaceFrame, PoseFrame
from .geometry import nose_offsets, shoulder_height

logger = logging.getLogger("smartstance.calibration")


def _fold(running: Optional[float], sample: float) -> float:
    if running is None:
        return sample
    return (running + sample) / 2


class Calibrator:
    """Accumulates calibration frames; `freeze()` hands out the immutable Baseline."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._shoulder: Optional[float] = None
        self._nose_x: Optional[float] = None
        self._nose_y: Optional[float] = None
        self.samples: int = 0
        self.face_samples: int = 0

    @property
    def seeded(self) -> bool:
        return self._shoulder is not None

    def add_sample(self, pose: Optional[PoseFrame], face: Optional[FaceFrame] = None) -> None:
        height = shoulder_height(pose)
        if height is not None:
            self._shoulder = _fold(self._shoulder, height)
            self.samples += 1

        offsets = nose_offsets(face)
        if offsets is not None:
            self._nose_x = _fold(self._nose_x, offsets[0])
            self._nose_y = _fold(self._nose_y, offsets[1])
            self.face_samples += 1

    def freeze(self) -> Baseline:
        baseline = Baseline(
            shoulder_height=self._shoulder if self._shoulder is not None else 0.0,
            nose_offset_x=self._nose_x if self._nose_x is not None else 0.0,
            nose_offset_y=self._nose_y if self._nose_y is not None else 0.0,
            face_seeded=self._nose_x is not None,
            samples=self.samples,
        )
        if not self.seeded:
            logger.warning("Calibration ended without shoulder landmarks — posture baseline is 0")
        elif not baseline.face_seeded:
            logger.info("Calibration ended without a face — gaze baseline left at 0")
        return baseline

"""
SmartStance — Landmark Geometry

Index constants (MediaPipe Holistic topology) and the small pieces of
geometry shared by calibration and the live analyzers. Every helper returns
None when a landmark it needs is absent.
"""

from __future__ import annotations

from typing import Optional, Tuple

from ..core.models import FaceFrame, PoseFrame

# -- Pose (33-point) ---------------------------------------------------------
LEFT_SHOULDER = 11
RIGHT_SHOULDER = 12
LEFT_WRIST = 15

# -- Face mesh (468-point) ---------------------------------------------------
NOSE_TIP = 1
LEFT_EAR = 234      # left face contour, ear level
RIGHT_EAR = 454
MOUTH_LEFT = 61
MOUTH_RIGHT = 291
UPPER_LIP = 13
LOWER_LIP = 14


def shoulder_height(pose: Optional[PoseFrame]) -> Optional[float]:
    if pose is None:
        return None
    left, right = pose.point(LEFT_SHOULDER), pose.point(RIGHT_SHOULDER)
    if left is None or right is None:
        return None
    return (left.y + right.y) / 2


def nose_offsets(face: Optional[FaceFrame]) -> Optional[Tuple[float, float]]:
    """
    Nose position relative to the ear midpoint, in face widths.
    x grows as the head turns, y grows as the head tips down.
    """
    if face is None:
        return None
    nose, left, right = face.point(NOSE_TIP), face.point(LEFT_EAR), face.point(RIGHT_EAR)
    if nose is None or left is None or right is None:
        return None
    face_width = abs(left.x - right.x)
    if face_width == 0:
        return None
    ear_x = (left.x + right.x) / 2
    ear_y = (left.y + right.y) / 2
    return (nose.x - ear_x) / face_width, (nose.y - ear_y) / face_width


def smile_ratio(face: Optional[FaceFrame]) -> Optional[float]:
    """Mouth width over mouth opening; None when the lips are closed or missing."""
    if face is None:
        return None
    left, right = face.point(MOUTH_LEFT), face.point(MOUTH_RIGHT)
    upper, lower = face.point(UPPER_LIP), face.point(LOWER_LIP)
    if left is None or right is None or upper is None or lower is None:
        return None
    height = abs(upper.y - lower.y)
    if height == 0:
        return None
    return abs(left.x - right.x) / height


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))

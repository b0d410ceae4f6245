"""
Calibration and landmark geometry tests.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest

from smartstance.core.models import FaceFrame, LandmarkPoint, PoseFrame
from smartstance.processing.calibration import Calibrator
from smartstance.processing.geometry import (
    LEFT_EAR,
    LEFT_SHOULDER,
    UPPER_LIP,
    clamp,
    nose_offsets,
    shoulder_height,
    smile_ratio,
)
from tests.fixtures.synthetic_landmarks import make_face, make_pose


class TestGeometry(unittest.TestCase):

    def test_shoulder_height_is_mean_y(self):
        self.assertAlmostEqual(shoulder_height(make_pose(shoulder_y=0.42)), 0.42)

    def test_shoulder_height_missing_landmark(self):
        self.assertIsNone(shoulder_height(make_pose(missing=(LEFT_SHOULDER,))))
        self.assertIsNone(shoulder_height(None))

    def test_nose_offsets_in_face_widths(self):
        x, y = nose_offsets(make_face(yaw=0.1, pitch=-0.05))
        self.assertAlmostEqual(x, 0.1)
        self.assertAlmostEqual(y, -0.05)

    def test_nose_offsets_missing_ear(self):
        self.assertIsNone(nose_offsets(make_face(missing=(LEFT_EAR,))))

    def test_nose_offsets_zero_face_width(self):
        pts = [LandmarkPoint(0.5, 0.5) for _ in range(468)]
        self.assertIsNone(nose_offsets(FaceFrame(tuple(pts))))

    def test_smile_ratio(self):
        self.assertAlmostEqual(smile_ratio(make_face(mouth_width=0.1, mouth_open=0.05)), 2.0)

    def test_smile_ratio_closed_mouth(self):
        self.assertIsNone(smile_ratio(make_face(mouth_open=0.0)))
        self.assertIsNone(smile_ratio(make_face(missing=(UPPER_LIP,))))

    def test_clamp(self):
        self.assertEqual(clamp(-5), 0)
        self.assertEqual(clamp(250), 100)
        self.assertEqual(clamp(42.5), 42.5)

    def test_frame_parse_accepts_mappings_and_sequences(self):
        frame = PoseFrame.parse([{"x": 0.1, "y": 0.2}, [0.3, 0.4, 0.5], None])
        self.assertIsInstance(frame, PoseFrame)
        self.assertEqual(frame.point(0), LandmarkPoint(0.1, 0.2))
        self.assertEqual(frame.point(1), LandmarkPoint(0.3, 0.4, 0.5))
        self.assertIsNone(frame.point(2))
        self.assertIsNone(frame.point(99))
        self.assertIsNone(PoseFrame.parse([]))


class TestCalibrator(unittest.TestCase):
    """Two-point running mean baseline."""

    def setUp(self):
        self.cal = Calibrator()

    def test_no_samples_gives_zero_baseline(self):
        baseline = self.cal.freeze()
        self.assertEqual(baseline.shoulder_height, 0.0)
        self.assertEqual(baseline.samples, 0)
        self.assertFalse(baseline.face_seeded)

    def test_first_sample_seeds_directly(self):
        self.cal.add_sample(make_pose(shoulder_y=0.5))
        self.assertTrue(self.cal.seeded)
        self.assertAlmostEqual(self.cal.freeze().shoulder_height, 0.5)

    def test_running_mean_weights_recent_frames(self):
        for y in (0.4, 0.6, 0.8):
            self.cal.add_sample(make_pose(shoulder_y=y))
        # ((0.4 + 0.6) / 2 + 0.8) / 2
        self.assertAlmostEqual(self.cal.freeze().shoulder_height, 0.65)
        self.assertEqual(self.cal.samples, 3)

    def test_repeated_frame_converges_to_its_values(self):
        pose = make_pose(shoulder_y=0.37)
        face = make_face(yaw=0.065, pitch=-0.03)
        for _ in range(7):
            self.cal.add_sample(pose, face)
        baseline = self.cal.freeze()
        x, y = nose_offsets(face)
        self.assertAlmostEqual(baseline.shoulder_height, shoulder_height(pose))
        self.assertAlmostEqual(baseline.nose_offset_x, x)
        self.assertAlmostEqual(baseline.nose_offset_y, y)
        self.assertEqual(baseline.samples, 7)
        self.assertEqual(self.cal.face_samples, 7)

    def test_frame_without_shoulders_is_skipped(self):
        self.cal.add_sample(make_pose(missing=(LEFT_SHOULDER,)))
        self.assertFalse(self.cal.seeded)
        self.assertEqual(self.cal.samples, 0)

    def test_face_seeds_independently(self):
        self.cal.add_sample(make_pose(shoulder_y=0.5))
        self.cal.add_sample(make_pose(shoulder_y=0.5), make_face(yaw=0.04, pitch=0.02))
        baseline = self.cal.freeze()
        self.assertTrue(baseline.face_seeded)
        self.assertAlmostEqual(baseline.nose_offset_x, 0.04)
        self.assertAlmostEqual(baseline.nose_offset_y, 0.02)
        self.assertEqual(self.cal.face_samples, 1)

    def test_reset(self):
        self.cal.add_sample(make_pose(), make_face())
        self.cal.reset()
        self.assertFalse(self.cal.seeded)
        self.assertEqual(self.cal.face_samples, 0)


if __name__ == "__main__":
    unittest.main()

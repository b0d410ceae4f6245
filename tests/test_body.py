"""
Body analyzer tests: posture drop and hand activity.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest

from smartstance.core.models import Baseline
from smartstance.processing.body import (
    BodyAnalyzer,
    MSG_HANDS_DISTRACTING,
    MSG_HANDS_STIFF,
    MSG_SIT_UP,
)
from smartstance.processing.geometry import LEFT_SHOULDER, LEFT_WRIST
from tests.fixtures.synthetic_landmarks import make_pose


def _messages(reading):
    return [a.text for a in reading.alerts]


class TestPosture(unittest.TestCase):

    def setUp(self):
        self.analyzer = BodyAnalyzer()
        self.baseline = Baseline(shoulder_height=0.5, samples=10)

    def test_slouch_raises_sit_up(self):
        reading = self.analyzer.analyze(make_pose(shoulder_y=0.55), self.baseline, 0)
        self.assertAlmostEqual(reading.posture_delta, 0.05)
        self.assertIn(MSG_SIT_UP, _messages(reading))

    def test_small_drop_is_tolerated(self):
        reading = self.analyzer.analyze(make_pose(shoulder_y=0.53), self.baseline, 0)
        self.assertNotIn(MSG_SIT_UP, _messages(reading))

    def test_sitting_taller_never_alerts(self):
        reading = self.analyzer.analyze(make_pose(shoulder_y=0.40), self.baseline, 0)
        self.assertLess(reading.posture_delta, 0)
        self.assertNotIn(MSG_SIT_UP, _messages(reading))

    def test_sit_up_cooldown_is_2000ms(self):
        reading = self.analyzer.analyze(make_pose(shoulder_y=0.6), self.baseline, 0)
        request = [a for a in reading.alerts if a.key == MSG_SIT_UP][0]
        self.assertEqual(request.cooldown_ms, 2000)

    def test_missing_shoulders_skip_posture(self):
        reading = self.analyzer.analyze(
            make_pose(missing=(LEFT_SHOULDER,)), self.baseline, 0,
        )
        self.assertIsNone(reading.posture_delta)


class TestHandActivity(unittest.TestCase):

    def setUp(self):
        self.analyzer = BodyAnalyzer()
        self.baseline = Baseline(shoulder_height=0.5)

    def test_first_frame_has_zero_displacement(self):
        reading = self.analyzer.analyze(make_pose(wrist_x=0.3), self.baseline, 0)
        self.assertEqual(reading.hand_activity, 0)

    def test_activity_scales_with_displacement(self):
        self.analyzer.analyze(make_pose(wrist_x=0.30), self.baseline, 0)
        reading = self.analyzer.analyze(make_pose(wrist_x=0.31), self.baseline, 0)
        self.assertAlmostEqual(reading.hand_activity, 25.0, places=3)

    def test_dead_zone_filters_jitter(self):
        self.analyzer.analyze(make_pose(wrist_x=0.300), self.baseline, 0)
        reading = self.analyzer.analyze(make_pose(wrist_x=0.304), self.baseline, 0)
        self.assertEqual(reading.hand_activity, 0)

    def test_activity_is_clamped(self):
        self.analyzer.analyze(make_pose(wrist_x=0.1), self.baseline, 0)
        reading = self.analyzer.analyze(make_pose(wrist_x=0.5), self.baseline, 0)
        self.assertEqual(reading.hand_activity, 100)
        self.assertIn(MSG_HANDS_DISTRACTING, _messages(reading))

    def test_stiff_hands_only_after_ten_words(self):
        quiet = self.analyzer.analyze(make_pose(wrist_x=0.3), self.baseline, 10)
        self.assertNotIn(MSG_HANDS_STIFF, _messages(quiet))
        talking = self.analyzer.analyze(make_pose(wrist_x=0.3), self.baseline, 11)
        self.assertIn(MSG_HANDS_STIFF, _messages(talking))

    def test_history_is_bounded_and_most_recent_first(self):
        for i in range(20):
            self.analyzer.analyze(make_pose(wrist_x=0.01 * i), self.baseline, 0)
        history = self.analyzer.hand_history
        self.assertEqual(len(history), 15)
        self.assertAlmostEqual(history[0].x, 0.19)

    def test_missing_wrist_skips_hand_activity(self):
        reading = self.analyzer.analyze(make_pose(missing=(LEFT_WRIST,)), self.baseline, 0)
        self.assertIsNone(reading.hand_activity)
        self.assertEqual(self.analyzer.hand_history, [])

    def test_reset_clears_history(self):
        self.analyzer.analyze(make_pose(), self.baseline, 0)
        self.analyzer.reset()
        self.assertEqual(self.analyzer.hand_history, [])


if __name__ == "__main__":
    unittest.main()

"""
Session phase machine, frame gate, channel policy and timeline tests.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest

from smartstance.core.health import ChannelPolicy, FrameGate
from smartstance.core.latency import TimelineTracer
from smartstance.core.state_machine import SessionPhase, SessionStateMachine


class TestSessionStateMachine(unittest.TestCase):

    def setUp(self):
        self.calls = []
        self.sm = SessionStateMachine(on_transition=lambda *a: self.calls.append(a))

    def test_full_lifecycle(self):
        for phase in (SessionPhase.CALIBRATING, SessionPhase.LIVE,
                      SessionPhase.PROCESSING, SessionPhase.DONE):
            self.sm.transition(phase)
        self.assertEqual(self.sm.phase, SessionPhase.DONE)
        self.assertEqual(len(self.sm.history), 4)
        self.assertEqual(self.calls[0][:2], (SessionPhase.INIT, SessionPhase.CALIBRATING))

    def test_illegal_transition_raises(self):
        with self.assertRaises(ValueError):
            self.sm.transition(SessionPhase.LIVE)
        self.assertEqual(self.sm.phase, SessionPhase.INIT)

    def test_done_is_only_reachable_from_processing(self):
        self.sm.transition(SessionPhase.CALIBRATING)
        self.sm.transition(SessionPhase.LIVE)
        with self.assertRaises(ValueError):
            self.sm.transition(SessionPhase.DONE)

    def test_same_phase_is_noop(self):
        self.sm.transition(SessionPhase.CALIBRATING)
        self.sm.transition(SessionPhase.CALIBRATING)
        self.assertEqual(len(self.sm.history), 1)

    def test_accepts_input_only_while_capturing(self):
        self.assertFalse(self.sm.accepts_input)
        self.sm.transition(SessionPhase.CALIBRATING)
        self.assertTrue(self.sm.accepts_input)
        self.sm.transition(SessionPhase.LIVE)
        self.assertTrue(self.sm.accepts_input)
        self.sm.transition(SessionPhase.PROCESSING)
        self.assertFalse(self.sm.accepts_input)

    def test_callback_error_does_not_block_transition(self):
        def boom(*args):
            raise RuntimeError("listener gone")

        sm = SessionStateMachine(on_transition=boom)
        sm.transition(SessionPhase.CALIBRATING)
        self.assertEqual(sm.phase, SessionPhase.CALIBRATING)

    def test_reset_from_done(self):
        for phase in (SessionPhase.PROCESSING, SessionPhase.DONE):
            self.sm.transition(phase)
        self.sm.reset()
        self.assertEqual(self.sm.phase, SessionPhase.INIT)


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class TestFrameGate(unittest.TestCase):

    def test_frames_inside_budget_are_dropped(self):
        clock = FakeClock(10.0)
        gate = FrameGate(target_fps=15.0, clock=clock)
        self.assertTrue(gate.admit())
        clock.now += 0.03
        self.assertFalse(gate.admit())
        clock.now += 0.04
        self.assertTrue(gate.admit())
        self.assertEqual((gate.admitted, gate.dropped), (2, 1))

    def test_dropped_frames_do_not_move_the_window(self):
        gate = FrameGate(target_fps=10.0)
        self.assertTrue(gate.admit(now=0.0))
        self.assertFalse(gate.admit(now=0.05))
        self.assertTrue(gate.admit(now=0.1))

    def test_reset(self):
        gate = FrameGate(target_fps=10.0)
        gate.admit(now=1.0)
        gate.reset()
        self.assertTrue(gate.admit(now=1.01))


class TestChannelPolicy(unittest.TestCase):

    def test_channels_go_stale(self):
        clock = FakeClock(100.0)
        policy = ChannelPolicy(stale_timeout=5.0, clock=clock)
        health = policy.check_health()
        self.assertFalse(health.video or health.audio or health.speech)
        policy.report_frame()
        policy.report_audio()
        self.assertTrue(policy.check_health().video)
        clock.now += 6
        self.assertFalse(policy.check_health().video)

    def test_running_listener_counts_as_speech(self):
        policy = ChannelPolicy(clock=FakeClock(1.0))
        policy.report_listener(True)
        self.assertTrue(policy.check_health().speech)
        self.assertTrue(policy.diagnostics()["listener_running"])


class TestTimeline(unittest.TestCase):

    def test_milestones_mark_once(self):
        tracer = TimelineTracer("s1")
        tracer.mark("live_started")
        first = tracer.timeline.live_started
        tracer.mark("live_started")
        self.assertEqual(tracer.timeline.live_started, first)
        self.assertIn("live_started", tracer.summary())

    def test_unknown_milestone(self):
        with self.assertRaises(ValueError):
            TimelineTracer("s1").mark("lunch")


if __name__ == "__main__":
    unittest.main()

"""
API endpoint tests.

Uses the FastAPI test client. Does not require a running server; narrative
enrichment is disabled so reports come from the local rules.
"""

import sys
import os

# Ensure project root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from tests.fixtures.synthetic_landmarks import pose_payload


def _receive_until(ws, msg_type, limit=50):
    """Collect messages until one of `msg_type` arrives."""
    seen = []
    for _ in range(limit):
        msg = ws.receive_json()
        seen.append(msg)
        if msg.get("type") == msg_type:
            return msg, seen
    raise AssertionError(f"{msg_type} not received; got {[m.get('type') for m in seen]}")


class ServerTestCase(unittest.TestCase):

    def setUp(self):
        patcher = patch("smartstance.server.default_enricher", return_value=None)
        patcher.start()
        self.addCleanup(patcher.stop)
        from smartstance.server import app
        self.client = TestClient(app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)


class TestRestRoutes(ServerTestCase):

    def test_health(self):
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["status"], "ok")
        self.assertIn("active_sessions", body)

    def test_sessions_empty(self):
        r = self.client.get("/sessions")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {})

    def test_unknown_session(self):
        r = self.client.get("/session/nope")
        self.assertEqual(r.json(), {"error": "session not found"})


class TestSessionSocket(ServerTestCase):

    def test_ping_without_session(self):
        with self.client.websocket_connect("/ws/session") as ws:
            ws.send_json({"type": "ping"})
            self.assertEqual(ws.receive_json(), {"type": "pong"})

    def test_input_before_start_is_rejected(self):
        with self.client.websocket_connect("/ws/session") as ws:
            ws.send_json({"type": "frame", "pose": pose_payload()})
            msg = ws.receive_json()
            self.assertEqual(msg["type"], "error")

    def test_malformed_json_is_skipped(self):
        with self.client.websocket_connect("/ws/session") as ws:
            ws.send_text("{not json")
            ws.send_json({"type": "ping"})
            self.assertEqual(ws.receive_json(), {"type": "pong"})

    def test_bad_calibration_seconds_keeps_socket_open(self):
        with self.client.websocket_connect("/ws/session") as ws:
            for bad in (None, "soon", -1, True):
                ws.send_json({"type": "start_session", "calibration_seconds": bad})
                msg = ws.receive_json()
                self.assertEqual(msg["type"], "error")
                self.assertIn("calibration_seconds", msg["message"])
            ws.send_json({"type": "ping"})
            self.assertEqual(ws.receive_json(), {"type": "pong"})
            self.assertEqual(self.client.get("/sessions").json(), {})

    def test_countdown_sends_baseline(self):
        with self.client.websocket_connect("/ws/session") as ws:
            ws.send_json({"type": "start_session", "calibration_seconds": 0.5})
            started, _ = _receive_until(ws, "session_started")
            self.assertEqual(started["data"]["phase"], "calibrating")
            ws.send_json({"type": "frame", "pose": pose_payload(shoulder_y=0.45)})
            baseline, _ = _receive_until(ws, "baseline")
            self.assertAlmostEqual(baseline["data"]["shoulder_height"], 0.45)
            ws.send_json({"type": "stop_session"})
            _receive_until(ws, "session_stopped")

    def test_go_live_sends_baseline(self):
        with self.client.websocket_connect("/ws/session") as ws:
            ws.send_json({"type": "start_session", "calibration_seconds": 60})
            _receive_until(ws, "session_started")
            ws.send_json({"type": "go_live"})
            baseline, _ = _receive_until(ws, "baseline")
            self.assertIn("shoulder_height", baseline["data"])
            ws.send_json({"type": "stop_session"})
            _receive_until(ws, "session_stopped")

    def test_full_session_produces_report(self):
        with self.client.websocket_connect("/ws/session") as ws:
            ws.send_json({"type": "start_session", "calibration_seconds": 0})
            started, _ = _receive_until(ws, "session_started")
            self.assertEqual(started["data"]["phase"], "live")

            ws.send_json({"type": "frame", "pose": pose_payload(shoulder_y=0.5)})
            hud, _ = _receive_until(ws, "hud")
            self.assertEqual(hud["data"]["phase"], "live")

            ws.send_json({
                "type": "speech",
                "result_index": 0,
                "results": [{"transcript": "um so like I think", "is_final": True}],
            })
            ws.send_json({"type": "audio", "levels": [50] * 128})
            ws.send_json({"type": "stop_session"})

            stopped, seen = _receive_until(ws, "session_stopped")
            reports = [m for m in seen if m["type"] == "report"]
            self.assertEqual(len(reports), 1)
            data = reports[0]["data"]
            self.assertEqual(data["metrics"]["filler_count"], 3)
            self.assertEqual(data["metrics"]["loudness"], 50)
            self.assertEqual(data["transcript"], "um so like I think ")
            self.assertEqual(data["report"]["source"], "local")
            self.assertEqual(stopped["data"]["phase"], "done")


if __name__ == "__main__":
    unittest.main()

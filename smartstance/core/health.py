"""
SmartStance — Channel Health & Frame Gating (Policy Layer)

All gating decisions live here — the session engine never decides on its
own whether a frame is admitted or a channel is alive; it asks this module.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

from .config import capture_cfg

logger = logging.getLogger("smartstance.health")


# ---------------------------------------------------------------------------
# Frame gate
# ---------------------------------------------------------------------------

class FrameGate:
    """
    Freshness over completeness: a frame arriving before the inter-frame
    budget has elapsed is dropped, never queued.
    """

    def __init__(
        self,
        target_fps: float = capture_cfg.target_fps,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._budget = 1.0 / target_fps if target_fps > 0 else 0.0
        self._clock = clock
        self._last_admitted: Optional[float] = None
        self.admitted: int = 0
        self.dropped: int = 0

    @property
    def budget(self) -> float:
        return self._budget

    def admit(self, now: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        if self._last_admitted is not None and now - self._last_admitted < self._budget:
            self.dropped += 1
            return False
        self._last_admitted = now
        self.admitted += 1
        return True

    def reset(self) -> None:
        self._last_admitted = None
        self.admitted = 0
        self.dropped = 0


# ---------------------------------------------------------------------------
# Health Check Result
# ---------------------------------------------------------------------------

class HealthStatus:
    """Snapshot of producer-channel health at a point in time."""

    __slots__ = ("video", "audio", "speech", "checked_at")

    def __init__(
        self,
        video: bool = False,
        audio: bool = False,
        speech: bool = False,
    ) -> None:
        self.video = video
        self.audio = audio
        self.speech = speech
        self.checked_at = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "video": self.video,
            "audio": self.audio,
            "speech": self.speech,
            "checked_at": self.checked_at,
        }


# ---------------------------------------------------------------------------
# Channel policy
# ---------------------------------------------------------------------------

class ChannelPolicy:
    """
    Tracks when each producer channel last delivered input.

    The engine reports raw signals; this module decides what counts as alive.
    Speech is considered alive while its listener is running, since silence
    legitimately produces no events.
    """

    def __init__(
        self,
        stale_timeout: float = capture_cfg.channel_stale_timeout,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._stale_timeout = stale_timeout
        self._clock = clock
        self._last_frame: float = 0.0
        self._last_audio: float = 0.0
        self._last_speech: float = 0.0
        self._listener_running = False

    # ── Signal setters (called by the engine) ───────────────────────────

    def report_frame(self) -> None:
        self._last_frame = self._clock()

    def report_audio(self) -> None:
        self._last_audio = self._clock()

    def report_speech(self) -> None:
        self._last_speech = self._clock()

    def report_listener(self, running: bool) -> None:
        self._listener_running = running

    # ── Health checks ───────────────────────────────────────────────────

    def _fresh(self, last: float, now: float) -> bool:
        return last > 0 and (now - last) < self._stale_timeout

    def check_health(self) -> HealthStatus:
        now = self._clock()
        return HealthStatus(
            video=self._fresh(self._last_frame, now),
            audio=self._fresh(self._last_audio, now),
            speech=self._listener_running or self._fresh(self._last_speech, now),
        )

    def diagnostics(self) -> Dict[str, Any]:
        now = self._clock()

        def _age(last: float) -> Optional[float]:
            return round(now - last, 2) if last > 0 else None

        return {
            "health": self.check_health().to_dict(),
            "last_frame_age_s": _age(self._last_frame),
            "last_audio_age_s": _age(self._last_audio),
            "last_speech_age_s": _age(self._last_speech),
            "listener_running": self._listener_running,
        }

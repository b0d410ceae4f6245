"""
SmartStance — Coaching Session Engine

================================================================================
ONE SUBJECT, THREE PRODUCER CHANNELS, ONE REPORT
================================================================================

`CoachingSession` is the piece that ties the analyzers together:

  1. Phases are enforced by the SessionStateMachine:
       INIT → CALIBRATING → LIVE → PROCESSING → DONE
  2. Vision frames pass the FrameGate (~15 fps); frames inside the budget
     are dropped. During calibration they build the Baseline, during the
     live phase they go through the Body and Face analyzers.
  3. Speech events (from the SupervisedListener or pushed by the transport)
     feed the TranscriptAnalyzer.
  4. Audio level buffers feed the AudioLevelMonitor at their own cadence.
  5. Every analyzer returns readings + alert requests; the engine writes
     the readings into the MetricsAggregator and hands the requests to
     the AlertDispatcher.
  6. A poller pushes the snapshot to the consumer at 5 Hz.
  7. `stop()` stops the listener, seals the snapshot and runs the
     ReportSynthesizer exactly once.

Producer handlers are synchronous and never raise, so they can be called
straight from a capture callback.
================================================================================
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from ..core.config import capture_cfg
from ..core.health import ChannelPolicy, FrameGate
from ..core.interfaces import NarrativeEnricher, SpeechRecognizer
from ..core.latency import TimelineTracer
from ..core.models import (
    Alert,
    AlertRequest,
    Baseline,
    DebugView,
    FaceFrame,
    MetricsSnapshot,
    PoseFrame,
    ReportBundle,
    SessionTelemetry,
    SpeechEvent,
)
from ..core.state_machine import SessionPhase, SessionStateMachine
from ..processing.aggregator import MetricsAggregator
from ..processing.alerts import AlertDispatcher
from ..processing.audio_monitor import AudioLevelMonitor, AudioReading
from ..processing.body import BodyAnalyzer, BodyReading
from ..processing.calibration import Calibrator
from ..processing.face import FaceAnalyzer, FaceReading, NOMINAL_COLOR
from ..processing.report import ReportSynthesizer
from ..processing.transcript import TranscriptAnalyzer, TranscriptReading
from .listener import SupervisedListener

logger = logging.getLogger("smartstance.engine")

CALIBRATION_COLOR = "#FFFF00"


@dataclass
class FrameResult:
    """What the HUD needs back from one analysed frame."""
    phase: str
    skeleton_color: str
    hud_color: str = NOMINAL_COLOR
    body: Optional[BodyReading] = None
    face: Optional[FaceReading] = None


_callback_tasks: Set[asyncio.Task] = set()


def _callback_done(task: asyncio.Task) -> None:
    _callback_tasks.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.warning(f"Consumer callback error: {task.exception()}")


def _fire(callback: Optional[Callable[[Any], Any]], payload: Any) -> Optional[asyncio.Task]:
    """Call a consumer callback from sync code; coroutines are scheduled and tracked."""
    if callback is None:
        return None
    try:
        result = callback(payload)
    except Exception as e:
        logger.warning(f"Consumer callback error: {e}")
        return None
    if not asyncio.iscoroutine(result):
        return None
    try:
        task = asyncio.get_running_loop().create_task(result)
    except RuntimeError:
        result.close()  # No event loop to run it on
        return None
    _callback_tasks.add(task)
    task.add_done_callback(_callback_done)
    return task


async def _emit(callback: Optional[Callable[[Any], Any]], payload: Any) -> None:
    if callback is None:
        return
    cb = callback(payload)
    if asyncio.iscoroutine(cb):
        await cb


# ═══════════════════════════════════════════════════════════════════════════
# Coaching Session (one per subject)
# ═══════════════════════════════════════════════════════════════════════════

class CoachingSession:
    """
    Lifecycle:
        session = CoachingSession(session_id, on_alert=..., on_metrics=..., on_report=...)
        await session.start()              # countdown → live
        session.handle_frame(pose, face)   # per vision frame
        session.handle_speech(event)       # per recognizer event
        session.handle_audio(levels)       # per renderer tick
        bundle = await session.stop()      # report, exactly once
    """

    def __init__(
        self,
        session_id: str,
        on_alert: Optional[Callable[[Alert], Any]] = None,
        on_metrics: Optional[Callable[[MetricsSnapshot], Any]] = None,
        on_report: Optional[Callable[[ReportBundle], Any]] = None,
        on_status: Optional[Callable[[Dict[str, Any]], Any]] = None,
        on_phase: Optional[Callable[[Dict[str, Any]], Any]] = None,
        on_baseline: Optional[Callable[[Baseline], Any]] = None,
        recognizer: Optional[SpeechRecognizer] = None,
        enricher: Optional[NarrativeEnricher] = None,
        calibration_seconds: float = capture_cfg.calibration_seconds,
        poll_interval: float = capture_cfg.poll_interval,
        target_fps: float = capture_cfg.target_fps,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.session_id = session_id
        self.telemetry = SessionTelemetry(session_id=session_id)

        # Callbacks for streaming data to the transport/UI layer
        self._on_alert = on_alert
        self._on_metrics = on_metrics
        self._on_report = on_report
        self._on_status = on_status
        self._on_phase = on_phase
        self._on_baseline = on_baseline

        self._calibration_seconds = calibration_seconds
        self._poll_interval = poll_interval
        self._clock = clock

        # Phase machine + policy layer + timeline
        self._state_machine = SessionStateMachine(on_transition=self._on_phase_transition)
        self._gate = FrameGate(target_fps=target_fps, clock=clock)
        self._policy = ChannelPolicy(clock=clock)
        self._timeline = TimelineTracer(session_id)

        # Analyzers
        self._calibrator = Calibrator()
        self._body = BodyAnalyzer()
        self._face = FaceAnalyzer(rng=rng)
        self._audio = AudioLevelMonitor()
        self._transcript = TranscriptAnalyzer()
        self._aggregator = MetricsAggregator()
        self._alerts = AlertDispatcher(
            clock=lambda: self._clock() * 1000.0,
            on_alert=self._handle_alert,
        )
        self._synthesizer = ReportSynthesizer(enricher=enricher)

        self._listener: Optional[SupervisedListener] = None
        if recognizer is not None:
            self._listener = SupervisedListener(
                recognizer,
                on_event=self.handle_speech,
                on_state=self._policy.report_listener,
            )

        # Background tasks
        self._countdown_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._status_task: Optional[asyncio.Task] = None

        self.baseline: Optional[Baseline] = None
        self._live_started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self._stop_lock = asyncio.Lock()
        self._bundle: Optional[ReportBundle] = None

    # ── Read API ────────────────────────────────────────────────────────

    @property
    def phase(self) -> SessionPhase:
        return self._state_machine.phase

    @property
    def is_active(self) -> bool:
        return self._state_machine.accepts_input

    @property
    def transcript(self) -> str:
        return self._transcript.full_transcript

    @property
    def report(self) -> Optional[ReportBundle]:
        return self._bundle

    @property
    def listener(self) -> Optional[SupervisedListener]:
        return self._listener

    def snapshot(self) -> MetricsSnapshot:
        return self._aggregator.snapshot()

    def debug_view(self) -> DebugView:
        return self._aggregator.debug_view()

    def active_alerts(self) -> List[Alert]:
        return self._alerts.active()

    def elapsed_seconds(self) -> float:
        if self._live_started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else self._clock()
        return max(0.0, end - self._live_started_at)

    # ── Phase callback ──────────────────────────────────────────────────

    def _on_phase_transition(self, prev: SessionPhase, new: SessionPhase, reason: str) -> None:
        self.telemetry.phase = new.value
        _fire(self._on_phase, {
            "type": "phase",
            "phase": new.value,
            "previous_phase": prev.value,
            "reason": reason,
        })

    # ── Start: calibration countdown → live ─────────────────────────────

    async def start(self) -> Dict[str, Any]:
        """Begin calibration; the live phase follows after the countdown."""
        self._state_machine.transition(SessionPhase.CALIBRATING, reason="session_started")
        self._timeline.mark("calibration_started")

        if self._calibration_seconds > 0:
            self._countdown_task = asyncio.create_task(
                self._countdown(), name=f"countdown-{self.session_id}"
            )
        else:
            self.go_live()

        self._status_task = asyncio.create_task(
            self._status_worker(), name=f"status-{self.session_id}"
        )

        logger.info(
            f"[{self.session_id}] Session started — "
            f"calibrating for {self._calibration_seconds:.0f}s"
        )
        return {
            "session_id": self.session_id,
            "phase": self.phase.value,
            "calibration_seconds": self._calibration_seconds,
            "speech_listener": self._listener is not None,
        }

    async def _countdown(self) -> None:
        try:
            await asyncio.sleep(self._calibration_seconds)
            if self.phase == SessionPhase.CALIBRATING:
                self.go_live()
        except asyncio.CancelledError:
            pass

    def go_live(self) -> Baseline:
        """Freeze the baseline and switch the analyzers on."""
        self.baseline = self._calibrator.freeze()
        self._live_started_at = self._clock()
        self._state_machine.transition(
            SessionPhase.LIVE, reason=f"calibrated on {self.baseline.samples} frames"
        )
        self._timeline.mark("live_started")
        logger.info(f"[{self.session_id}] Baseline: {self.baseline.to_dict()}")
        _fire(self._on_baseline, self.baseline)

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return self.baseline  # Driven synchronously, no background workers

        if self._listener is not None:
            self._listener.start()
        self._poll_task = asyncio.create_task(
            self._metrics_poller(), name=f"metrics-{self.session_id}"
        )
        return self.baseline

    # ── Producer channel: vision frames ─────────────────────────────────

    def handle_frame(
        self,
        pose: Optional[PoseFrame],
        face: Optional[FaceFrame] = None,
        now: Optional[float] = None,
    ) -> Optional[FrameResult]:
        if not self._state_machine.accepts_input:
            return None

        self.telemetry.frames_received += 1
        if not self._gate.admit(now):
            self.telemetry.frames_dropped += 1
            return None
        if pose is None and face is None:
            return None

        try:
            self._policy.report_frame()

            if self.phase == SessionPhase.CALIBRATING:
                self._calibrator.add_sample(pose, face)
                self.telemetry.calibration_frames += 1
                return FrameResult(phase=self.phase.value, skeleton_color=CALIBRATION_COLOR)

            return self._analyze_live(pose, face)
        except Exception as e:
            logger.debug(f"[{self.session_id}] Frame processing error: {e}")
            return None

    def _analyze_live(self, pose: Optional[PoseFrame], face: Optional[FaceFrame]) -> FrameResult:
        baseline = self.baseline or Baseline()
        words = self._aggregator.words
        result = FrameResult(phase=self.phase.value, skeleton_color=NOMINAL_COLOR)
        requests: List[AlertRequest] = []

        if pose is not None:
            body = self._body.analyze(pose, baseline, words)
            if body.posture_delta is not None:
                self._aggregator.record_posture(body.posture_delta)
            if body.hand_activity is not None:
                self._aggregator.record_hand_activity(body.hand_activity)
            requests.extend(body.alerts)
            result.body = body

        if face is not None:
            reading = self._face.analyze(face, baseline, words)
            if reading is not None:
                self._aggregator.record_gaze(
                    reading.yaw_drift, reading.pitch_drift,
                    reading.reading_score, reading.gaze_stability,
                )
                if reading.smile_score is not None:
                    self._aggregator.record_smile(reading.smile_score)
                requests.extend(reading.alerts)
                result.face = reading
                result.hud_color = reading.hud_color

        self._alerts.apply(requests)
        self.telemetry.frames_analysed += 1
        self._timeline.mark("first_frame")

        if self.telemetry.frames_analysed % 300 == 0:
            dbg = self._aggregator.debug_view().to_dict()
            logger.info(
                f"[{self.session_id}] Analysed {self.telemetry.frames_analysed} frames "
                f"(dropped {self.telemetry.frames_dropped}), debug={dbg}"
            )
        return result

    # ── Producer channel: speech events ─────────────────────────────────

    def handle_speech(self, event: SpeechEvent) -> Optional[TranscriptReading]:
        if self.phase != SessionPhase.LIVE:
            return None
        try:
            self.telemetry.speech_events += 1
            self._policy.report_speech()
            reading = self._transcript.handle_event(event, self.elapsed_seconds())
            self._aggregator.record_speech(
                reading.words, reading.wpm, reading.filler_count, reading.filler_breakdown,
            )
            self._alerts.apply(reading.alerts)
            if reading.words:
                self._timeline.mark("first_transcript")
            return reading
        except Exception as e:
            logger.debug(f"[{self.session_id}] Speech event error: {e}")
            return None

    # ── Producer channel: audio levels ──────────────────────────────────

    def handle_audio(
        self,
        levels: Optional[Sequence[float]] = None,
        pcm: Optional[Sequence[float]] = None,
    ) -> Optional[AudioReading]:
        if self.phase != SessionPhase.LIVE:
            return None
        try:
            if levels is not None:
                reading = self._audio.tick(levels)
            elif pcm is not None:
                reading = self._audio.tick_pcm(pcm)
            else:
                return None
            if reading is None:
                return None
            self.telemetry.audio_ticks += 1
            self._policy.report_audio()
            self._aggregator.record_loudness(reading.loudness)
            self._alerts.apply(reading.alerts)
            return reading
        except Exception as e:
            logger.debug(f"[{self.session_id}] Audio tick error: {e}")
            return None

    # ── Alerts ──────────────────────────────────────────────────────────

    def _handle_alert(self, alert: Alert) -> None:
        self.telemetry.alerts_raised += 1
        self._timeline.mark("first_alert")
        logger.info(f"[{self.session_id}] Alert: {alert.message}")
        _fire(self._on_alert, alert)

    # ── Stop: seal metrics, synthesize the report once ──────────────────

    async def stop(self) -> ReportBundle:
        """End the session. Safe to call repeatedly; the report is built once."""
        async with self._stop_lock:
            if self._bundle is not None:
                return self._bundle

            self._state_machine.transition(SessionPhase.PROCESSING, reason="session_ended")
            self._stopped_at = self._clock()

            if self._listener is not None:
                await self._listener.stop()
                self.telemetry.listener_restarts = self._listener.restarts
            self._policy.report_listener(False)

            for task in [self._countdown_task, self._poll_task, self._status_task]:
                if task and not task.done():
                    task.cancel()
                    try:
                        await task
                    except (asyncio.CancelledError, Exception):
                        pass
            self._countdown_task = self._poll_task = self._status_task = None

            final = self._aggregator.seal()
            duration = round(self.elapsed_seconds() / 60.0, 2)
            transcript = self._transcript.full_transcript
            report = await self._synthesizer.synthesize(final, duration, transcript)

            self._bundle = ReportBundle(
                report=report,
                transcript=transcript,
                metrics=final,
                duration_minutes=duration,
            )
            self.telemetry.report_source = report.source
            self._timeline.mark("report_ready")
            self._state_machine.transition(SessionPhase.DONE, reason=f"report:{report.source}")

            logger.info(
                f"[{self.session_id}] Session ended — grade={report.grade} "
                f"({report.source}), {duration} min, {final.total_words} words"
            )

        try:
            await _emit(self._on_report, self._bundle)
        except Exception as e:
            logger.warning(f"[{self.session_id}] Report consumer error: {e}")
        return self._bundle

    def reset(self) -> None:
        """Prepare for a fresh session (only once the previous one is finished)."""
        if self.phase not in (SessionPhase.INIT, SessionPhase.DONE):
            raise ValueError(f"Cannot reset while {self.phase.value}")
        self._state_machine.reset()
        self._calibrator.reset()
        self._body.reset()
        self._face.reset()
        self._audio.reset()
        self._transcript.reset()
        self._aggregator.reset()
        self._alerts.reset()
        self._gate.reset()
        self._timeline.reset()
        self.baseline = None
        self._live_started_at = None
        self._stopped_at = None
        self._bundle = None
        self.telemetry = SessionTelemetry(session_id=self.session_id)
        logger.info(f"[{self.session_id}] Session reset")

    # ── Metrics poller (decoupled 5 Hz cadence) ─────────────────────────

    async def _metrics_poller(self) -> None:
        while self.phase == SessionPhase.LIVE:
            try:
                await asyncio.sleep(self._poll_interval)
                if self.phase != SessionPhase.LIVE:
                    break
                await _emit(self._on_metrics, self._aggregator.snapshot())
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.debug(f"[{self.session_id}] Metrics poller error: {e}")

    # ── Status broadcaster ──────────────────────────────────────────────

    def status(self) -> Dict[str, Any]:
        if self._listener is not None:
            self.telemetry.listener_restarts = self._listener.restarts
        return {
            "session_id": self.session_id,
            "phase": self.phase.value,
            "elapsed_s": round(self.elapsed_seconds(), 1),
            "telemetry": self.telemetry.to_dict(),
            "debug": self._aggregator.debug_view().to_dict(),
            "channels": self._policy.diagnostics(),
            "timeline": self._timeline.summary(),
        }

    async def _status_worker(self) -> None:
        while self._state_machine.accepts_input:
            try:
                await asyncio.sleep(capture_cfg.status_broadcast_interval)
                if not self._state_machine.accepts_input:
                    break
                await _emit(self._on_status, self.status())
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.debug(f"[{self.session_id}] Status broadcast error: {e}")

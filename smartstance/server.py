"""
SmartStance — FastAPI Server

================================================================================
Architecture:
  • One CoachingSession per WebSocket connection
  • The capture client (camera + landmark detector + speech recognizer +
    audio analyser) pushes three independent channels over the socket:
      - frames  (pose / face landmarks, normalised)
      - speech  (recognizer results: finalized + interim segments)
      - audio   (byte-frequency level buffer or raw PCM)
  • Alerts are pushed as they fire; metrics at 5 Hz; status every second
  • On stop the report bundle is pushed once, for the document renderer
================================================================================

Endpoints:
  WS  /ws/session           — real-time session stream
  GET /health               — server health
  GET /sessions             — list active sessions with telemetry
  GET /session/{session_id} — single session detail

Client → Server messages:
  { type: "start_session", calibration_seconds?: 5 }  → begin calibration
  { type: "go_live" }                                  → end calibration now
  { type: "frame", pose: [...], face: [...] }          → one vision frame
  { type: "speech", result_index: 0, results: [...] }  → recognizer event
  { type: "audio", levels: [...] } | { pcm: [...] }    → audio tick
  { type: "stop_session" }                             → end + report
  { type: "ping" }                                     → keepalive

Server → Client messages:
  { type: "session_started", data: {...} }
  { type: "phase", data: {...} }
  { type: "baseline", data: {...} }        → frozen baseline after go_live
  { type: "hud", data: {...} }             → colour hints per analysed frame
  { type: "alert", data: {...} }           → alert fired (max 3 live)
  { type: "metrics", data: {...} }         → snapshot, 5 Hz
  { type: "system_status", payload: {...} }
  { type: "report", data: {...} }          → report bundle, once
  { type: "session_stopped", data: {...} }
  { type: "pong" }
  { type: "error", message: "..." }
"""

from __future__ import annotations

import json
import logging
import math
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .core.config import server_cfg, enrichment_cfg, capture_cfg
from .core.models import FaceFrame, PoseFrame, SpeechEvent
from .services.enrichment import default_enricher
from .services.registry import SessionRegistry

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("smartstance")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

# ---------------------------------------------------------------------------
# Session Registry
# ---------------------------------------------------------------------------

registry = SessionRegistry()
_enricher: Optional[Any] = None

# ---------------------------------------------------------------------------
# FastAPI Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _enricher
    logger.info("SmartStance engine starting...")
    _enricher = default_enricher()
    logger.info(f"   Narrative enrichment: {'gemini' if _enricher else 'local rules'}")
    yield
    logger.info("Shutting down — closing all sessions...")
    await registry.stop_all()
    logger.info("SmartStance engine stopped")


# ---------------------------------------------------------------------------
# FastAPI App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SmartStance — Presentation Telemetry Engine",
    version="1.0.0",
    description=(
        "Derives posture, gesture, gaze, pacing, filler and loudness metrics "
        "from a live landmark + speech + audio stream, raises rate-limited "
        "coaching alerts and synthesizes an end-of-session report."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(server_cfg.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# REST Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {
        "status": "ok",
        "version": "1.0.0",
        "enrichment_configured": enrichment_cfg.enabled,
        "active_sessions": registry.active_count,
    }


@app.get("/sessions")
async def list_sessions():
    return {
        sid: {"active": s.is_active, "phase": s.phase.value, "telemetry": s.telemetry.to_dict()}
        for sid, s in registry.all_sessions.items()
    }


@app.get("/session/{session_id}")
async def session_detail(session_id: str):
    session = registry.get(session_id)
    if session is None:
        return {"error": "session not found"}
    return {
        "session_id": session_id,
        "active": session.is_active,
        "metrics": session.snapshot().to_dict(),
        **session.status(),
    }


# ---------------------------------------------------------------------------
# WebSocket: Per-Session Stream
# ---------------------------------------------------------------------------

def _calibration_seconds(message: Dict[str, Any]) -> Optional[float]:
    """Requested countdown length, or None when the value is unusable."""
    raw = message.get("calibration_seconds", capture_cfg.calibration_seconds)
    if isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return value


@app.websocket("/ws/session")
async def websocket_session(ws: WebSocket):
    """One CoachingSession per connection; the client pushes the producer channels."""
    await ws.accept()

    session_id = uuid.uuid4().hex[:12]
    session: Any = None

    async def send(data: Dict[str, Any]) -> None:
        try:
            await ws.send_text(json.dumps(data))
        except Exception:
            pass

    async def on_alert(alert: Any) -> None:
        await send({"type": "alert", "data": alert.to_dict()})

    async def on_metrics(m: Any) -> None:
        await send({"type": "metrics", "data": m.to_dict()})

    async def on_report(bundle: Any) -> None:
        await send({"type": "report", "data": bundle.to_dict()})

    async def on_status(status: Dict[str, Any]) -> None:
        await send({"type": "system_status", "payload": status})

    async def on_phase(change: Dict[str, Any]) -> None:
        await send({"type": "phase", "data": change})

    async def on_baseline(baseline: Any) -> None:
        await send({"type": "baseline", "data": baseline.to_dict()})

    try:
        while True:
            raw = await ws.receive_text()

            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                continue

            msg_type = message.get("type", "")

            # ── Start session (calibration countdown) ──
            if msg_type == "start_session":
                if session is not None:
                    await send({"type": "error", "message": "Session already active"})
                    continue
                calibration_seconds = _calibration_seconds(message)
                if calibration_seconds is None:
                    await send({
                        "type": "error",
                        "message": "calibration_seconds must be a non-negative number",
                    })
                    continue
                session = registry.create(
                    session_id=session_id,
                    on_alert=on_alert,
                    on_metrics=on_metrics,
                    on_report=on_report,
                    on_status=on_status,
                    on_phase=on_phase,
                    on_baseline=on_baseline,
                    enricher=_enricher,
                    calibration_seconds=calibration_seconds,
                )
                info = await session.start()
                await send({"type": "session_started", "data": info})

            elif session is None:
                if msg_type == "ping":
                    await send({"type": "pong"})
                elif msg_type:
                    await send({"type": "error", "message": "No active session"})

            # ── Skip the remaining countdown ──
            elif msg_type == "go_live":
                if session.phase.value == "calibrating":
                    session.go_live()

            # ── Vision frame ──
            elif msg_type == "frame":
                try:
                    pose = PoseFrame.parse(message.get("pose"))
                    face = FaceFrame.parse(message.get("face"))
                except (KeyError, TypeError, ValueError, IndexError) as e:
                    logger.debug(f"[{session_id}] Bad frame payload: {e}")
                    continue
                result = session.handle_frame(pose, face)
                if result is not None:
                    await send({"type": "hud", "data": {
                        "phase": result.phase,
                        "skeleton_color": result.skeleton_color,
                        "hud_color": result.hud_color,
                    }})

            # ── Speech recognizer event ──
            elif msg_type == "speech":
                try:
                    event = SpeechEvent.parse(message)
                except (TypeError, ValueError, AttributeError) as e:
                    logger.debug(f"[{session_id}] Bad speech payload: {e}")
                    continue
                session.handle_speech(event)

            # ── Audio tick ──
            elif msg_type == "audio":
                session.handle_audio(levels=message.get("levels"), pcm=message.get("pcm"))

            # ── Stop session ──
            elif msg_type == "stop_session":
                await registry.stop_session(session_id)
                await send({"type": "session_stopped", "data": session.status()})
                session = None

            # ── Keepalive ──
            elif msg_type == "ping":
                await send({"type": "pong"})

    except WebSocketDisconnect:
        logger.info(f"[{session_id}] WebSocket disconnected")
    except Exception as e:
        logger.error(f"[{session_id}] WebSocket error: {e}", exc_info=True)
    finally:
        if session is not None:
            await registry.stop_session(session_id)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "smartstance.server:app",
        host=server_cfg.host,
        port=server_cfg.port,
        reload=True,
        log_level="info",
    )

"""
SmartStance — Configuration

Centralised settings from environment variables.
All tuneable constants live here — zero magic numbers in other files.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv
import certifi

os.environ.setdefault("SSL_CERT_FILE", certifi.where())
os.environ.setdefault("REQUESTS_CA_BUNDLE", certifi.where())

load_dotenv()

# ── The Gemini SDK reads GOOGLE_API_KEY; accept GEMINI_API_KEY as well ──
_gemini_key = os.getenv("GEMINI_API_KEY", "")
if _gemini_key and not os.getenv("GOOGLE_API_KEY"):
    os.environ["GOOGLE_API_KEY"] = _gemini_key


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServerConfig:
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8080"))
    cors_origins: tuple[str, ...] = (
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    )


# ---------------------------------------------------------------------------
# Narrative enrichment (optional remote report path)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EnrichmentConfig:
    """Gemini narrative call used at session end. Empty key → local report only."""
    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    # Hard timeout for the single end-of-session call
    timeout: float = float(os.getenv("ENRICHMENT_TIMEOUT", "8.0"))
    # Transcript characters included in the prompt
    excerpt_chars: int = 800
    temperature: float = 0.4

    @property
    def enabled(self) -> bool:
        return bool(self.gemini_api_key)


# ---------------------------------------------------------------------------
# Capture cadence
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CaptureConfig:
    # Vision frames analysed per second; faster frames are dropped
    target_fps: float = 15.0
    # UI / aggregation poll interval (5 Hz)
    poll_interval: float = 0.2
    # Calibration countdown before the live phase (seconds)
    calibration_seconds: float = float(os.getenv("CALIBRATION_SECONDS", "5"))
    # Delay before restarting a speech recognizer that ended unexpectedly
    listener_restart_delay: float = 0.1
    # Upper bound on a recognizer stop and the listener task join
    listener_stop_timeout: float = 1.0
    # Status broadcast interval
    status_broadcast_interval: float = 1.0
    # Channel considered stale after this many seconds without input
    channel_stale_timeout: float = 5.0


# ---------------------------------------------------------------------------
# Alert display
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AlertConfig:
    display_ms: float = 2000.0
    max_visible: int = 3


# ---------------------------------------------------------------------------
# Analyzer thresholds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BodyConfig:
    slouch_delta: float = 0.04
    slouch_cooldown_ms: float = 2000.0
    hand_history: int = 15
    # Wrist displacement below this is treated as tracking noise
    hand_dead_zone: float = 0.005
    hand_gain: float = 100.0 * 25.0
    stiff_below: float = 2.0
    stiff_min_words: int = 10
    distracting_above: float = 85.0
    hand_cooldown_ms: float = 4000.0


@dataclass(frozen=True)
class FaceConfig:
    yaw_limit: float = 0.15
    pitch_limit: float = 0.12
    drift_cooldown_ms: float = 1500.0
    reading_gain: float = 300.0
    yaw_history: int = 20
    # Samples required before the head-movement variance is trusted
    min_stability_samples: int = 5
    stability_gain: float = 20000.0
    unstable_below: float = 40.0
    unstable_min_words: int = 10
    unstable_cooldown_ms: float = 2000.0
    smile_ratio: float = 1.8
    frown_ratio: float = 1.5
    smile_min_words: int = 15
    smile_nudge_probability: float = 0.01
    smile_cooldown_ms: float = 4000.0


@dataclass(frozen=True)
class AudioConfig:
    quiet_below: float = 15.0
    silence_floor: float = 1.0
    loud_above: float = 80.0
    cooldown_ms: float = 3000.0
    # Byte-frequency reduction of raw PCM (browser analyser defaults)
    fft_size: int = 256
    min_decibels: float = -100.0
    max_decibels: float = -30.0


@dataclass(frozen=True)
class SpeechConfig:
    # WPM is withheld until this much of the live phase has elapsed
    min_wpm_minutes: float = 0.08
    filler_cooldown_ms: float = 1500.0
    fillers: tuple[str, ...] = (
        "um", "uh", "like", "actually", "basically", "literally", "so",
        "mean", "you know", "ahh", "umm", "uhh", "i mean", "yeah",
    )


# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------

server_cfg = ServerConfig()
enrichment_cfg = EnrichmentConfig()
capture_cfg = CaptureConfig()
alert_cfg = AlertConfig()
body_cfg = BodyConfig()
face_cfg = FaceConfig()
audio_cfg = AudioConfig()
speech_cfg = SpeechConfig()

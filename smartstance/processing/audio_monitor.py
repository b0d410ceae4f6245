"""
SmartStance — Audio Level Monitor

================================================================================
LOUDNESS FROM THE LIVE MICROPHONE
================================================================================

Runs at the renderer's own refresh tick, not locked to the vision frames:

  1. The audio producer pushes a byte-frequency buffer (0–255 per bin), the
     same shape a browser AnalyserNode hands out.
  2. Raw PCM can be pushed instead; `byte_frequency_levels` reduces it to
     that buffer first (FFT 256, Blackman window, −100..−30 dB → 0..255).
  3. Each tick the mean level becomes the snapshot's loudness and may raise
     a "speak louder" / "too loud" alert.
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

import numpy as np

from ..core.config import audio_cfg, AudioConfig
from ..core.models import AlertRequest
from .geometry import clamp

logger = logging.getLogger("smartstance.audio")

MSG_SPEAK_LOUDER = "SPEAK LOUDER"
MSG_TOO_LOUD = "TOO LOUD"


def byte_frequency_levels(pcm: Union[np.ndarray, Sequence[float]], cfg: AudioConfig = audio_cfg) -> np.ndarray:
    """
    Reduce the most recent `fft_size` PCM samples to fft_size/2 byte levels.
    int16-range input is normalised to [-1, 1] first.
    """
    audio = np.asarray(pcm, dtype=np.float32).ravel()
    n = cfg.fft_size
    if audio.size == 0:
        return np.zeros(n // 2, dtype=np.uint8)
    if np.abs(audio).max() > 1.0:
        audio = audio / 32768.0  # int16 range

    frame = audio[-n:]
    if frame.size < n:
        frame = np.pad(frame, (n - frame.size, 0))

    spectrum = np.abs(np.fft.rfft(frame * np.blackman(n)))[: n // 2] / n
    with np.errstate(divide="ignore"):
        db = 20.0 * np.log10(spectrum)
    scaled = 255.0 * (db - cfg.min_decibels) / (cfg.max_decibels - cfg.min_decibels)
    return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)


@dataclass
class AudioReading:
    average: float = 0.0
    loudness: int = 0
    alerts: List[AlertRequest] = field(default_factory=list)


class AudioLevelMonitor:
    """Reduces each level buffer to a scalar and checks it against the loudness band."""

    def __init__(self, cfg: AudioConfig = audio_cfg) -> None:
        self._cfg = cfg
        self.ticks: int = 0
        self.last_average: float = 0.0

    def tick(self, levels: Union[np.ndarray, Sequence[float]]) -> Optional[AudioReading]:
        arr = np.asarray(levels, dtype=np.float64)
        if arr.size == 0:
            return None

        cfg = self._cfg
        avg = float(arr.mean())
        self.ticks += 1
        self.last_average = avg

        reading = AudioReading(average=avg, loudness=round(clamp(round(avg))))
        if avg > 0:
            if cfg.silence_floor < avg < cfg.quiet_below:
                reading.alerts.append(
                    AlertRequest(MSG_SPEAK_LOUDER, cfg.cooldown_ms, MSG_SPEAK_LOUDER)
                )
            if avg > cfg.loud_above:
                reading.alerts.append(
                    AlertRequest(MSG_TOO_LOUD, cfg.cooldown_ms, MSG_TOO_LOUD)
                )

        if self.ticks % 500 == 0:
            logger.debug(f"Audio tick {self.ticks}: avg={avg:.1f}")
        return reading

    def tick_pcm(self, pcm: Union[np.ndarray, Sequence[float]]) -> Optional[AudioReading]:
        if len(pcm) == 0:
            return None
        return self.tick(byte_frequency_levels(pcm, self._cfg))

    def reset(self) -> None:
        self.ticks = 0
        self.last_average = 0.0

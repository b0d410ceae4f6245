"""
SmartStance — Transcript / Filler Analyzer

Consumes incremental speech-recognition events:

  • Finalized segments grow the transcript (append-only, space-terminated).
  • The interim segment is an unconfirmed tail, replaced on every event.
  • Word count, WPM and filler counts are recomputed from the full
    finalized + interim text on every event (idempotent, not incremental).
  • A filler at the very end of the interim text raises a live nudge.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Pattern, Sequence, Tuple

from ..core.config import speech_cfg, SpeechConfig
from ..core.models import AlertRequest, SpeechEvent, TranscriptState

logger = logging.getLogger("smartstance.transcript")


def compile_fillers(fillers: Sequence[str]) -> List[Tuple[str, Pattern[str]]]:
    """One whole-word, case-insensitive pattern per filler token or phrase."""
    return [
        (f, re.compile(r"\b" + re.escape(f) + r"\b", re.IGNORECASE))
        for f in fillers
    ]


def count_fillers(text: str, patterns: List[Tuple[str, Pattern[str]]]) -> Dict[str, int]:
    """Per-filler occurrence counts; fillers that never occur are omitted."""
    breakdown: Dict[str, int] = {}
    for filler, pattern in patterns:
        hits = len(pattern.findall(text))
        if hits:
            breakdown[filler] = hits
    return breakdown


@dataclass
class TranscriptReading:
    words: int = 0
    wpm: int = 0
    filler_count: int = 0
    filler_breakdown: Dict[str, int] = field(default_factory=dict)
    alerts: List[AlertRequest] = field(default_factory=list)


class TranscriptAnalyzer:

    def __init__(self, cfg: SpeechConfig = speech_cfg) -> None:
        self._cfg = cfg
        self._fillers = set(cfg.fillers)
        self._patterns = compile_fillers(cfg.fillers)
        self.state = TranscriptState()
        self.events: int = 0
        self._nudged: Dict[str, int] = {}

    @property
    def full_transcript(self) -> str:
        return self.state.finalized

    def reset(self) -> None:
        self.state = TranscriptState()
        self.events = 0
        self._nudged = {}

    def _reduce(self, event: SpeechEvent) -> None:
        interim = ""
        new_final = ""
        for segment in list(event.results)[event.result_index:]:
            if segment.is_final:
                new_final += segment.transcript + " "
            else:
                interim += segment.transcript
        if new_final:
            self.state.finalized += new_final
        self.state.interim = interim

    def wpm(self, words: int, elapsed_s: float) -> int:
        minutes = elapsed_s / 60.0
        # Too early for a rate: withhold rather than report a blow-up
        if minutes > self._cfg.min_wpm_minutes and words > 0:
            return round(words / minutes)
        return 0

    def handle_event(self, event: SpeechEvent, elapsed_s: float) -> TranscriptReading:
        self.events += 1
        self._reduce(event)

        text = self.state.combined
        reading = TranscriptReading()
        reading.words = len([w for w in text.split() if w])
        reading.wpm = self.wpm(reading.words, elapsed_s)
        reading.filler_breakdown = count_fillers(text, self._patterns)
        reading.filler_count = sum(reading.filler_breakdown.values())

        interim = self.state.interim.strip()
        if interim:
            last_word = interim.split(" ")[-1].lower()
            seen = reading.filler_breakdown.get(last_word, 0)
            # Only a new occurrence nudges; re-sent interim text does not
            if last_word in self._fillers and seen > self._nudged.get(last_word, 0):
                self._nudged[last_word] = seen
                reading.alerts.append(
                    AlertRequest(
                        f"filler-{last_word}",
                        self._cfg.filler_cooldown_ms,
                        f"FILLER: {last_word.upper()}",
                    )
                )

        logger.debug(
            f"Speech event #{self.events}: words={reading.words} "
            f"wpm={reading.wpm} fillers={reading.filler_count}"
        )
        return reading

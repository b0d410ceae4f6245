"""
SmartStance — Report Synthesizer

Runs exactly once, at session end. Never on the capture path.

Two layers:
  1. Local rules  — deterministic, zero-dependency, always available.
  2. Narrative enrichment — richer grade/title/summary/tips from a remote
     model, with async timeout + automatic fallback to the rules on failure.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Dict, Optional

from ..core.config import enrichment_cfg
from ..core.interfaces import NarrativeEnricher
from ..core.models import MetricsSnapshot, SessionReport

logger = logging.getLogger("smartstance.report")

NO_SPEECH = "No speech recorded during this session."

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


class NarrativeFormatError(ValueError):
    """The enrichment reply was not a {grade, title, summary, tips[]} object."""


# ---------------------------------------------------------------------------
# Rule-based report (deterministic fallback)
# ---------------------------------------------------------------------------

class LocalReportRules:
    """Grade, title and tips from pacing and filler thresholds."""

    THRESHOLDS = dict(
        wpm_energetic=130,
        wpm_slow=100,
        fillers_many=3,
    )

    def build(self, m: MetricsSnapshot, duration_minutes: float) -> SessionReport:
        T = self.THRESHOLDS
        summary = f"Session Duration: {duration_minutes:.2f} min. Pacing: {m.wpm} WPM. "
        grade = "B"
        title = "The Developing Speaker"
        tips = ["Practice varying your tone."]

        if m.wpm > T["wpm_energetic"]:
            grade = "A-"
            title = "The Energetic Presenter"
            summary += "Your energy was high. "
            tips.append("Pause for emphasis.")
        # 0 WPM means nothing was measured, not a slow speaker
        elif 0 < m.wpm < T["wpm_slow"]:
            grade = "C+"
            title = "The Thoughtful Observer"
            summary += "Delivery was slow. "
            tips.append("Increase urgency.")

        if m.filler_count > T["fillers_many"]:
            summary += f"Detected {m.filler_count} fillers. "
            tips.append("Pause instead of using fillers.")

        return SessionReport(
            grade=grade, title=title, summary=summary, tips=tuple(tips), source="local",
        )


# ---------------------------------------------------------------------------
# Enrichment reply parsing
# ---------------------------------------------------------------------------

def parse_narrative(text: Any) -> SessionReport:
    """Strip Markdown fences, decode JSON, validate shape. Raises NarrativeFormatError."""
    if not isinstance(text, str):
        raise NarrativeFormatError(f"Expected text reply, got {type(text).__name__}")
    cleaned = _FENCE.sub("", text).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise NarrativeFormatError(f"Reply is not JSON: {e}") from e

    if not isinstance(data, dict):
        raise NarrativeFormatError("Reply is not a JSON object")
    for key in ("grade", "title", "summary"):
        if not isinstance(data.get(key), str) or not data[key].strip():
            raise NarrativeFormatError(f"Missing or non-string '{key}'")
    tips = data.get("tips")
    if not isinstance(tips, list) or not all(isinstance(t, str) for t in tips):
        raise NarrativeFormatError("'tips' must be a list of strings")

    return SessionReport(
        grade=data["grade"].strip(),
        title=data["title"].strip(),
        summary=data["summary"].strip(),
        tips=tuple(t.strip() for t in tips),
        source="llm",
    )


def build_enrichment_request(
    m: MetricsSnapshot,
    duration_minutes: float,
    transcript: str,
    excerpt_chars: int = enrichment_cfg.excerpt_chars,
) -> Dict[str, Any]:
    safe = transcript.strip() or NO_SPEECH
    return {
        "duration_minutes": round(duration_minutes, 2),
        "wpm": m.wpm,
        "filler_count": m.filler_count,
        "transcript_excerpt": safe[:excerpt_chars],
    }


# ---------------------------------------------------------------------------
# Combined synthesizer (enrichment first → rules fallback)
# ---------------------------------------------------------------------------

class ReportSynthesizer:
    """
    Produces the session report. Never fails outright.

    Priority:
      1. Ask the enricher (if any) for a narrative, under a hard timeout.
      2. Fall back to the local rules on timeout / failure / no enricher.
    """

    def __init__(
        self,
        enricher: Optional[NarrativeEnricher] = None,
        timeout: float = enrichment_cfg.timeout,
    ) -> None:
        self._enricher = enricher
        self._timeout = timeout
        self._rules = LocalReportRules()

    def local_report(self, m: MetricsSnapshot, duration_minutes: float) -> SessionReport:
        return self._rules.build(m, duration_minutes)

    async def synthesize(
        self,
        m: MetricsSnapshot,
        duration_minutes: float,
        transcript: str = "",
    ) -> SessionReport:
        local = self.local_report(m, duration_minutes)
        if self._enricher is None:
            return local

        request = build_enrichment_request(m, duration_minutes, transcript)
        try:
            reply = await asyncio.wait_for(
                self._enricher.enrich(request), timeout=self._timeout
            )
            report = parse_narrative(reply)
            logger.info(f"Narrative enrichment succeeded: grade={report.grade}")
            return report
        except asyncio.TimeoutError:
            logger.warning("Narrative enrichment timed out — using local report")
        except NarrativeFormatError as e:
            logger.warning(f"Narrative enrichment malformed: {e} — using local report")
        except Exception as e:
            logger.warning(f"Narrative enrichment failed: {e} — using local report")
        return local

"""
SmartStance — Gemini Narrative Service

Implements NarrativeEnricher with google-generativeai. One request per
session; the reply is returned raw and validated by the report synthesizer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import google.generativeai as genai

from ..core.config import enrichment_cfg, EnrichmentConfig

logger = logging.getLogger("smartstance.enrichment")


def build_prompt(request: Dict[str, Any]) -> str:
    return (
        "Executive Coach Analysis. "
        f"Stats: {request['duration_minutes']}m, {request['wpm']} WPM, "
        f"{request['filler_count']} fillers. "
        f"Transcript: \"{request['transcript_excerpt']}\". "
        'Reply with JSON only: { "grade": "S/A/B", "title": "Archetype", '
        '"summary": "Short summary", "tips": ["Tip 1", "Tip 2"] }'
    )


class GeminiNarrativeService:
    """
    Thin async wrapper around `GenerativeModel.generate_content`.

    The blocking SDK call runs in the default executor so the event loop
    keeps serving the other sessions while the report is generated.
    """

    def __init__(
        self,
        cfg: EnrichmentConfig = enrichment_cfg,
        model_factory: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self._cfg = cfg
        if model_factory is None:
            genai.configure(api_key=cfg.gemini_api_key)
            model_factory = genai.GenerativeModel
        self._model = model_factory(cfg.model)
        logger.info(f"GeminiNarrativeService ready (model={cfg.model})")

    async def enrich(self, request: Dict[str, Any]) -> str:
        prompt = build_prompt(request)
        generation_config = genai.types.GenerationConfig(
            temperature=self._cfg.temperature,
        )
        response = await asyncio.get_running_loop().run_in_executor(
            None,
            lambda: self._model.generate_content(
                prompt,
                generation_config=generation_config,
            ),
        )
        return response.text or ""


def default_enricher(cfg: EnrichmentConfig = enrichment_cfg) -> Optional[GeminiNarrativeService]:
    """The configured enricher, or None when no API key is set."""
    if not cfg.enabled:
        logger.info("GEMINI_API_KEY not set — reports use local rules only")
        return None
    try:
        return GeminiNarrativeService(cfg)
    except Exception as e:
        logger.warning(f"Gemini client init failed: {e} — reports use local rules only")
        return None

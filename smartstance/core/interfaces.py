"""
SmartStance — Collaborator Interfaces

Protocol definitions for the collaborators the engine talks to but does
not own:
  1. Speech recognizer  — long-lived listener producing speech events
  2. Narrative enricher — optional remote report generation

The engine communicates through these protocols — never by reaching into
a collaborator's internals.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Protocol, runtime_checkable

from .models import SpeechEvent


SpeechCallback = Callable[[SpeechEvent], Any]


@runtime_checkable
class SpeechRecognizer(Protocol):
    """A continuous recognizer. `listen` returns when recognition ends."""

    async def listen(self, on_event: SpeechCallback) -> None:
        """Deliver events until the recognizer stops (or raises)."""
        ...

    async def stop(self) -> None:
        """Ask the recognizer to end the current `listen` call."""
        ...


@runtime_checkable
class NarrativeEnricher(Protocol):
    """Turns session stats into a raw JSON narrative string."""

    async def enrich(self, request: Dict[str, Any]) -> str:
        """
        `request` carries duration_minutes, wpm, filler_count and
        transcript_excerpt. Returns the model's raw reply text.
        """
        ...

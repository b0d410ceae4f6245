"""
SmartStance — Session Phase Machine

Enforces the lifecycle: INIT → CALIBRATING → LIVE → PROCESSING → DONE.
All phase transitions go through this module so illegitimate phases
are impossible and every transition is logged.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

logger = logging.getLogger("smartstance.state")


class SessionPhase(str, Enum):
    """Strict session lifecycle phases."""
    INIT = "init"                # Session created, nothing captured yet
    CALIBRATING = "calibrating"  # Countdown running, baseline being built
    LIVE = "live"                # Analyzers running against the baseline
    PROCESSING = "processing"    # Capture stopped, report being synthesized
    DONE = "done"                # Report delivered


# Legal phase transitions
_TRANSITIONS: Dict[SessionPhase, Set[SessionPhase]] = {
    SessionPhase.INIT:        {SessionPhase.CALIBRATING, SessionPhase.PROCESSING},
    SessionPhase.CALIBRATING: {SessionPhase.LIVE, SessionPhase.PROCESSING, SessionPhase.INIT},
    SessionPhase.LIVE:        {SessionPhase.PROCESSING, SessionPhase.INIT},
    SessionPhase.PROCESSING:  {SessionPhase.DONE},
    SessionPhase.DONE:        {SessionPhase.INIT},
}


class SessionStateMachine:
    """
    Enforces legal phase transitions and notifies listeners.

    Usage:
        sm = SessionStateMachine(on_transition=my_callback)
        sm.transition(SessionPhase.CALIBRATING)   # OK
        sm.transition(SessionPhase.LIVE)          # OK
        sm.transition(SessionPhase.DONE)          # illegal from LIVE → raises
    """

    def __init__(
        self,
        on_transition: Optional[Callable[[SessionPhase, SessionPhase, str], None]] = None,
    ) -> None:
        self._phase = SessionPhase.INIT
        self._on_transition = on_transition
        self._history: List[Dict] = []
        self._entered_at = time.time()

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def history(self) -> List[Dict]:
        return list(self._history)

    @property
    def accepts_input(self) -> bool:
        """Producers may only feed the engine while calibrating or live."""
        return self._phase in (SessionPhase.CALIBRATING, SessionPhase.LIVE)

    def transition(self, target: SessionPhase, reason: str = "") -> None:
        """
        Attempt a phase transition. Raises ValueError on illegal transitions.
        """
        if target == self._phase:
            return  # Same phase is a no-op

        allowed = _TRANSITIONS.get(self._phase, set())
        if target not in allowed:
            raise ValueError(
                f"Illegal phase transition: {self._phase.value} → {target.value}. "
                f"Allowed from {self._phase.value}: {sorted(s.value for s in allowed)}. "
                f"Reason: {reason}"
            )

        prev = self._phase
        now = time.time()
        self._history.append({
            "from": prev.value,
            "to": target.value,
            "reason": reason,
            "timestamp": now,
            "duration_in_prev_ms": round((now - self._entered_at) * 1000, 1),
        })
        self._phase = target
        self._entered_at = now

        logger.info(
            f"PHASE: {prev.value} → {target.value}"
            + (f" ({reason})" if reason else "")
        )

        if self._on_transition:
            try:
                self._on_transition(prev, target, reason)
            except Exception as e:
                logger.error(f"Phase transition callback error: {e}")

    def reset(self) -> None:
        """Return to INIT for a fresh session."""
        if self._phase in (SessionPhase.CALIBRATING, SessionPhase.LIVE, SessionPhase.DONE):
            self.transition(SessionPhase.INIT, reason="reset")

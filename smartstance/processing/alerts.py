"""
SmartStance — Cooldown Alert Dispatcher

De-duplicates and rate-limits the short coaching alerts every analyzer
raises. Presentation-only: an alert never escalates into a failure.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from ..core.config import alert_cfg
from ..core.models import Alert, AlertRequest

logger = logging.getLogger("smartstance.alerts")


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class AlertDispatcher:
    """
    One cooldown table per session, shared by every analyzer.

    The same key cannot redisplay before its cooldown elapses, no matter
    how many components trigger it. At most `max_visible` alerts are shown;
    the oldest is dropped from the display queue but keeps its cooldown.
    """

    def __init__(
        self,
        display_ms: float = alert_cfg.display_ms,
        max_visible: int = alert_cfg.max_visible,
        clock: Callable[[], float] = monotonic_ms,
        on_alert: Optional[Callable[[Alert], Any]] = None,
    ) -> None:
        self._display_ms = display_ms
        self._clock = clock
        self._on_alert = on_alert
        self._last_fired: Dict[str, float] = {}
        self._visible: Deque[Alert] = deque(maxlen=max_visible)
        self.fired: int = 0

    @property
    def cooldown_table(self) -> Dict[str, float]:
        return dict(self._last_fired)

    def trigger(self, key: str, cooldown_ms: float, message: Optional[str] = None) -> bool:
        """Fire `key` unless it fired within the last `cooldown_ms`. Returns True if fired."""
        now = self._clock()
        last = self._last_fired.get(key)
        if last is not None and now - last <= cooldown_ms:
            return False

        self._last_fired[key] = now
        alert = Alert(
            key=key,
            message=message or key,
            raised_at=now,
            expires_at=now + self._display_ms,
        )
        self._visible.append(alert)
        self.fired += 1
        logger.debug(f"ALERT {alert.message} (key={key}, cooldown={cooldown_ms:.0f}ms)")

        if self._on_alert:
            try:
                self._on_alert(alert)
            except Exception as e:
                logger.warning(f"Alert listener error: {e}")
        return True

    def apply(self, requests: List[AlertRequest]) -> List[Alert]:
        """Dispatch analyzer side effects; returns the alerts that fired."""
        raised: List[Alert] = []
        for req in requests:
            if self.trigger(req.key, req.cooldown_ms, req.text):
                raised.append(self._visible[-1])
        return raised

    def active(self) -> List[Alert]:
        """Currently displayed alerts, oldest first. Expired ones are pruned."""
        now = self._clock()
        while self._visible and self._visible[0].expires_at <= now:
            self._visible.popleft()
        return [a for a in self._visible if a.expires_at > now]

    def reset(self) -> None:
        self._last_fired.clear()
        self._visible.clear()
        self.fired = 0

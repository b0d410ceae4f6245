"""
SmartStance — Supervised Speech Listener

Browser-style recognizers end on their own (silence, network hiccups).
While the session is live the listener restarts them after a short delay;
once `stop()` is called it tells the recognizer to stop and never restarts.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from ..core.config import capture_cfg
from ..core.interfaces import SpeechCallback, SpeechRecognizer

logger = logging.getLogger("smartstance.listener")


class SupervisedListener:
    """
    Lifecycle:
        listener = SupervisedListener(recognizer, on_event)
        listener.start()
        ...
        await listener.stop()
    """

    def __init__(
        self,
        recognizer: SpeechRecognizer,
        on_event: SpeechCallback,
        restart_delay: float = capture_cfg.listener_restart_delay,
        on_state: Optional[Callable[[bool], Any]] = None,
        stop_timeout: float = capture_cfg.listener_stop_timeout,
    ) -> None:
        self._recognizer = recognizer
        self._on_event = on_event
        self._restart_delay = restart_delay
        self._on_state = on_state
        self._stop_timeout = stop_timeout
        self._task: Optional[asyncio.Task] = None
        self.should_run = False
        self.is_listening = False
        self.starts: int = 0
        self.restarts: int = 0

    def _set_listening(self, listening: bool) -> None:
        self.is_listening = listening
        if self._on_state:
            try:
                self._on_state(listening)
            except Exception as e:
                logger.debug(f"Listener state callback error: {e}")

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self.should_run = True
        self._task = asyncio.create_task(self._supervise(), name="speech-listener")

    async def _supervise(self) -> None:
        while self.should_run:
            self.starts += 1
            self._set_listening(True)
            try:
                await self._recognizer.listen(self._on_event)
            except asyncio.CancelledError:
                self._set_listening(False)
                raise
            except Exception as e:
                logger.warning(f"Speech recognizer error: {e}")
            self._set_listening(False)

            if not self.should_run:
                break
            # Ended while the session is still live → restart
            self.restarts += 1
            logger.info(f"Speech recognizer ended unexpectedly — restart #{self.restarts}")
            await asyncio.sleep(self._restart_delay)

        logger.info("Speech listener stopped")

    async def stop(self) -> None:
        """Intentional shutdown: no restart afterwards."""
        self.should_run = False
        try:
            await asyncio.wait_for(self._recognizer.stop(), timeout=self._stop_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Recognizer stop timed out after {self._stop_timeout}s")
        except Exception as e:
            logger.debug(f"Recognizer stop error: {e}")

        if self._task and not self._task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=self._stop_timeout)
            except (asyncio.TimeoutError, asyncio.CancelledError, Exception):
                self._task.cancel()
                try:
                    await self._task
                except (asyncio.CancelledError, Exception):
                    pass
        self._task = None

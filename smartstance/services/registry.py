"""
SmartStance — Session Registry

Maps session_id → CoachingSession. Single event loop, no locking needed.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .engine import CoachingSession

logger = logging.getLogger("smartstance.registry")


class SessionRegistry:
    """Maps session_id → CoachingSession."""

    def __init__(self) -> None:
        self._sessions: Dict[str, CoachingSession] = {}

    def create(self, session_id: str, **kwargs: Any) -> CoachingSession:
        if session_id in self._sessions:
            raise ValueError(f"Session {session_id} already exists")
        session = CoachingSession(session_id=session_id, **kwargs)
        self._sessions[session_id] = session
        logger.info(f"SessionRegistry: created {session_id} (total: {len(self._sessions)})")
        return session

    async def stop_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        session = self._sessions.pop(session_id, None)
        if session:
            bundle = await session.stop()
            logger.info(f"SessionRegistry: removed {session_id} (total: {len(self._sessions)})")
            return bundle.to_dict()
        return None

    async def stop_all(self) -> None:
        for sid in list(self._sessions.keys()):
            await self.stop_session(sid)

    def get(self, session_id: str) -> Optional[CoachingSession]:
        return self._sessions.get(session_id)

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    @property
    def all_sessions(self) -> Dict[str, CoachingSession]:
        return dict(self._sessions)

"""
sessions.py
Registry of all live sessions, keyed by session id.
Each session gets its own coordinator, so an action in one room can never
reorder or mutate another.
"""
import logging
import re
from typing import Dict, List, Optional

from .config import Settings
from .coordinator import SessionCoordinator
from .models import Role, SessionSummary

logger = logging.getLogger(__name__)

_SESSION_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def is_valid_session_id(session_id: str) -> bool:
    return bool(_SESSION_ID.match(session_id))


class SessionManager:
    """
    Central registry for coordinators.
    Sessions live until their last connection leaves (the default room lives
    for the whole process); nothing is persisted.
    """
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.sessions: Dict[str, SessionCoordinator] = {}

    def configure(self, settings: Settings) -> None:
        """Applies to sessions created from now on."""
        self.settings = settings

    def get(self, session_id: str) -> Optional[SessionCoordinator]:
        return self.sessions.get(session_id)

    def get_or_create(self, session_id: str) -> SessionCoordinator:
        """Returns the session's coordinator, creating and starting it on first use."""
        coordinator = self.sessions.get(session_id)
        if coordinator is None:
            coordinator = SessionCoordinator(session_id, self.settings, on_empty=self._evict)
            self.sessions[session_id] = coordinator
            logger.info("[SESSIONS] created session %s", session_id)
        coordinator.start()
        return coordinator

    def _evict(self, coordinator: SessionCoordinator) -> None:
        """Forgets a session whose last connection left. The default room is kept."""
        if coordinator.session_id == self.settings.default_session_id:
            return
        if self.sessions.get(coordinator.session_id) is coordinator:
            del self.sessions[coordinator.session_id]
        coordinator.close()
        logger.info("[SESSIONS] closed empty session %s", coordinator.session_id)

    def resolve_role(self, requested: Optional[str], token: Optional[str]) -> Role:
        """
        Role claimed by a connecting socket. A host claim needs the shared
        token when one is configured; otherwise it is downgraded.
        """
        if (requested or "").lower() != Role.HOST.value:
            return Role.PARTICIPANT
        if self.settings.host_token and token != self.settings.host_token:
            logger.warning("[SESSIONS] host claim with bad token downgraded to participant")
            return Role.PARTICIPANT
        return Role.HOST

    def list_summaries(self) -> List[SessionSummary]:
        return [c.summary() for c in self.sessions.values()]

    async def shutdown(self) -> None:
        for coordinator in self.sessions.values():
            await coordinator.stop()

    def reset(self) -> None:
        """Forgets every session. Intended for tests and restarts."""
        self.sessions.clear()


# Global singleton accessor
manager = SessionManager()

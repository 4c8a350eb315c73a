"""In-memory registry of assessment sessions."""

import logging
from collections import OrderedDict

from shifa.core.config import settings
from shifa.core.exceptions import SessionNotFoundError
from shifa.rules.loader import RulesetLoader
from shifa.services.triage import TriageSession

logger = logging.getLogger(__name__)


class SessionStore:
    """Holds live sessions by id.

    Sessions are not persisted. When the store is full the least recently
    created session is dropped.
    """

    def __init__(
        self,
        loader: RulesetLoader | None = None,
        max_sessions: int | None = None,
    ) -> None:
        self.loader = loader or RulesetLoader()
        self.max_sessions = max_sessions or settings.max_sessions
        self._sessions: OrderedDict[str, TriageSession] = OrderedDict()

    def create(self, profile: str | None = None) -> TriageSession:
        """Create a session for a profile.

        Raises:
            ConfigError: If the profile cannot be loaded
        """
        profile = profile or settings.default_profile
        return self._register(TriageSession(self.loader.load_config(profile), profile=profile))

    async def acreate(self, profile: str | None = None) -> TriageSession:
        """Create a session without blocking the event loop on a ruleset load."""
        profile = profile or settings.default_profile
        config = await self.loader.aload_config(profile)
        return self._register(TriageSession(config, profile=profile))

    def _register(self, session: TriageSession) -> TriageSession:
        while len(self._sessions) >= self.max_sessions:
            evicted_id, _ = self._sessions.popitem(last=False)
            logger.info(f"Session store full; dropped session {evicted_id}")

        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> TriageSession:
        """Get a session by id.

        Raises:
            SessionNotFoundError: If no such session exists
        """
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def delete(self, session_id: str) -> None:
        """Discard a session."""
        if self._sessions.pop(session_id, None) is None:
            raise SessionNotFoundError(session_id)

    def __len__(self) -> int:
        return len(self._sessions)


session_store = SessionStore()

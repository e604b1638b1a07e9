"""Per-conversation agent sessions held in memory."""

from collections.abc import Callable

from saiman.services.agent import AgentLoop
from saiman.utils.logging import get_logger

logger = get_logger(__name__)


class AgentSessionManager:
    """One agent loop per conversation, so conversations can run concurrently."""

    def __init__(self, loop_factory: Callable[[], AgentLoop]):
        """Initialize session manager.

        Args:
            loop_factory: Builds a fresh agent loop sharing the process-wide clients
        """
        self.sessions: dict[str, AgentLoop] = {}
        self.loop_factory = loop_factory

    def get_or_create_session(self, conversation_id: str) -> AgentLoop:
        """Get the conversation's loop, creating it on first use."""
        session = self.sessions.get(conversation_id)
        if session is None:
            session = self.loop_factory()
            self.sessions[conversation_id] = session
            logger.debug(f"Created agent session for {conversation_id}")
        return session

    def get_session(self, conversation_id: str) -> AgentLoop | None:
        return self.sessions.get(conversation_id)

    def delete_session(self, conversation_id: str) -> bool:
        """Cancel any in-flight run and drop the session.

        Returns:
            True if session was deleted, False if not found
        """
        session = self.sessions.pop(conversation_id, None)
        if session is None:
            return False
        session.cancel()
        return True

    def cancel_all(self) -> None:
        for session in self.sessions.values():
            session.cancel()

    def get_session_count(self) -> int:
        return len(self.sessions)

    def get_running_session_count(self) -> int:
        return sum(1 for session in self.sessions.values() if session.is_running)

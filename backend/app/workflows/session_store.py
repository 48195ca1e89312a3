# /app/workflows/session_store.py

from typing import Dict, Iterator, Optional

from app.models.flow import FlowSession


class SessionStore:
    """
    In-memory map of user id -> FlowSession with lazy creation.

    A plain keyed container: it does not lock. Callers that can receive two
    messages for the same user at once must serialize them per user.
    """

    def __init__(self, start_step_id: str):
        self.start_step_id = start_step_id
        self._sessions: Dict[str, FlowSession] = {}

    def get_or_create(self, user_id: str) -> FlowSession:
        session = self._sessions.get(user_id)
        if session is None:
            session = FlowSession(user_id=user_id, current_step_id=self.start_step_id)
            self._sessions[user_id] = session
        return session

    def reset(self, user_id: str) -> None:
        """Discard the user's session. Resetting an unknown user is a no-op."""
        self._sessions.pop(user_id, None)

    def peek(self, user_id: str) -> Optional[FlowSession]:
        """Read-only lookup; never creates a session."""
        return self._sessions.get(user_id)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._sessions))

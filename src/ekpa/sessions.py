"""Chat sessions and their canonical histories."""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ekpa.conversation import ConversationTurn

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Chat"
TITLE_LIMIT = 50


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    """One chat thread. The history is mutated only by the orchestration loop."""

    id: str
    title: str = DEFAULT_TITLE
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    history: list[ConversationTurn] = field(default_factory=list, repr=False)

    def touch(self) -> None:
        self.updated_at = _now()

    def user_turn_count(self) -> int:
        return sum(1 for turn in self.history if turn.role == "user")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


def title_from_message(message: str) -> str:
    """First 50 characters of the message, with an ellipsis if truncated."""
    text = message.strip()
    if len(text) > TITLE_LIMIT:
        return text[:TITLE_LIMIT] + "..."
    return text


class SessionManager:
    """Owns every session and its history. No module-level state."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._counter = itertools.count(1)

    def _new_id(self) -> str:
        while True:
            candidate = f"session_{next(self._counter)}_{int(time.time() * 1000)}"
            if candidate not in self._sessions:
                return candidate

    def create(self, title: str | None = None) -> Session:
        session = Session(id=self._new_id(), title=title or DEFAULT_TITLE)
        self._sessions[session.id] = session
        logger.info("Created session %s", session.id)
        return session

    def ensure(self, session_id: str) -> Session:
        """Return the session, creating it with default metadata if unknown."""
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(id=session_id)
            self._sessions[session_id] = session
            logger.info("Created session %s on first message", session_id)
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def list(self) -> list[Session]:
        """All sessions, most recently updated first."""
        return sorted(self._sessions.values(), key=lambda s: s.updated_at, reverse=True)

    def rename(self, session_id: str, title: str | None) -> Session | None:
        """Set a new title. A falsy title leaves the current one in place."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if title:
            session.title = title
        session.touch()
        return session

    def delete(self, session_id: str) -> bool:
        """Remove a session and its history. Returns False if it did not exist."""
        removed = self._sessions.pop(session_id, None)
        if removed is not None:
            logger.info("Deleted session %s", session_id)
        return removed is not None

    def clear_history(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            session.history.clear()
            session.touch()

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

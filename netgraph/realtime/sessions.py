"""Session → user mapping for connected browser tabs."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class SessionTracker:
    """One-to-one map from a push-channel session to the user it registered.

    A user id is owned by at most one session: when a second session
    registers the same user, it takes over and the earlier session's
    mapping is dropped, so the earlier session's disconnect no longer
    affects the user.
    """

    def __init__(self) -> None:
        self._users: dict[str, str] = {}  # session_id → user_id

    def attach(self, session_id: str, user_id: str) -> None:
        for other, owner in list(self._users.items()):
            if owner == user_id and other != session_id:
                del self._users[other]
                logger.info("Session %s superseded by %s for user %s", other, session_id, user_id)
        self._users[session_id] = user_id

    def detach(self, session_id: str) -> str | None:
        return self._users.pop(session_id, None)

    def user_for(self, session_id: str) -> str | None:
        return self._users.get(session_id)

    def session_for(self, user_id: str) -> str | None:
        return next((s for s, u in self._users.items() if u == user_id), None)

    def clear(self) -> None:
        self._users.clear()

    def __len__(self) -> int:
        return len(self._users)

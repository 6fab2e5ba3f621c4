"""In-memory session store mapping opaque tokens to logged-in clients.

WHY: The proxy logs in to Otter once per user and then serves follow-up
requests with the same OtterClient (its cookies are the Otter session).
Callers identify themselves with an opaque session token. An in-memory
store is sufficient: sessions do not need to survive a restart.

HOW: Session is a dataclass holding the client, the Otter user id, and
timestamps. SessionStore is a thread-safe dict keyed by token with a
sliding timeout: every successful lookup refreshes ``last_seen``, and
cleanup_expired() removes sessions idle for longer than the timeout.

RULES:
- All store mutations are protected by threading.Lock
- Tokens are ``sess_`` followed by 32 random hex characters (secrets module)
- get_client() raises SessionNotFoundError / SessionExpiredError, never
  returns None
- Expired sessions are removed on lookup and by cleanup_expired()
- The store never closes clients itself; removed sessions are returned so
  the async caller can ``await session.client.aclose()``
- Default timeout is 24 hours
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from otter_proxy.api.client import OtterClient
from otter_proxy.config import SESSION_TIMEOUT_S

logger = logging.getLogger(__name__)


class SessionError(LookupError):
    """Base class for session lookup failures."""


class SessionNotFoundError(SessionError):
    def __init__(self) -> None:
        super().__init__("Session not found or expired. Please login again.")


class SessionExpiredError(SessionError):
    def __init__(self) -> None:
        super().__init__("Session expired. Please login again.")


@dataclass
class Session:
    """One logged-in proxy user.

    RULES:
    - id: opaque token handed to the caller, immutable
    - client: the OtterClient holding this user's Otter cookies
    - last_seen: epoch seconds of the last successful lookup
    """

    id: str
    client: OtterClient
    user_id: Optional[str]
    username: str
    created_at: float
    last_seen: float


class SessionStore:
    """Thread-safe in-memory store of proxy sessions."""

    def __init__(self, timeout_seconds: int = SESSION_TIMEOUT_S) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self.timeout_seconds = timeout_seconds

    @staticmethod
    def _new_token() -> str:
        return "sess_" + secrets.token_hex(16)

    def create_session(self, client: OtterClient, username: str) -> Session:
        """Store a logged-in client under a fresh token."""
        now = time.time()
        with self._lock:
            token = self._new_token()
            while token in self._sessions:
                token = self._new_token()
            session = Session(
                id=token,
                client=client,
                user_id=client.user_id,
                username=username,
                created_at=now,
                last_seen=now,
            )
            self._sessions[token] = session

        logger.info("Created session %s for user %s", token, session.user_id)
        return session

    def _is_expired(self, session: Session, now: float) -> bool:
        return now - session.last_seen > self.timeout_seconds

    def get_session(self, session_id: str) -> Session:
        """Look up a live session and refresh its sliding timeout.

        RULES:
        - Unknown token → SessionNotFoundError
        - Idle past the timeout → removed, SessionExpiredError
        """
        now = time.time()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError()
            if self._is_expired(session, now):
                del self._sessions[session_id]
                logger.info("Session %s expired on access", session_id)
                raise SessionExpiredError()
            session.last_seen = now
            return session

    def get_client(self, session_id: str) -> OtterClient:
        return self.get_session(session_id).client

    def delete_session(self, session_id: str) -> Optional[Session]:
        """Remove a session. Returns it, or None if it did not exist."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.info("Session logged out: %s for user %s", session_id, session.username)
        return session

    def cleanup_expired(self) -> List[Session]:
        """Remove every session idle for longer than the timeout."""
        now = time.time()
        with self._lock:
            expired = [
                self._sessions.pop(session_id)
                for session_id, session in list(self._sessions.items())
                if self._is_expired(session, now)
            ]

        for session in expired:
            logger.info("Cleaned up expired session: %s", session.id)
        return expired

    def clear(self) -> List[Session]:
        """Remove and return every session (used at shutdown)."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        return sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

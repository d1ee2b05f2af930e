"""Registry of the sessions currently held by the proxy.

The only state shared between sessions. Built once per server and passed
to the accept path; access is guarded by a lock so diagnostics can take
snapshots from any thread while sessions come and go.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
import uuid
from typing import TYPE_CHECKING

from termproxy.domain.errors import RegistryClosedError
from termproxy.domain.models import SessionInfo
from termproxy.proxy.protocol import CloseCode

if TYPE_CHECKING:
    from termproxy.proxy.session import SessionProxy

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Thread-safe session_id -> SessionProxy map."""

    def __init__(self) -> None:
        self._sessions: dict[str, SessionProxy] = {}
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._accepting = True

    @property
    def accepting(self) -> bool:
        return self._accepting

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __len__(self) -> int:
        return self.count

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def new_session_id(self) -> str:
        """Generate an identifier never handed out before in this process."""
        with self._lock:
            number = next(self._counter)
        return f"sess-{number}-{uuid.uuid4().hex[:8]}"

    def register(self, session: SessionProxy) -> None:
        """Insert a session.

        Raises:
            RegistryClosedError: If shutdown has already begun.
            ValueError: If the session id is already registered.
        """
        with self._lock:
            if not self._accepting:
                raise RegistryClosedError("Server is shutting down")
            if session.session_id in self._sessions:
                raise ValueError(f"Session {session.session_id} already registered")
            self._sessions[session.session_id] = session

    def remove(self, session_id: str) -> bool:
        """Remove a session. Returns False if it was not registered."""
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def get(self, session_id: str) -> SessionProxy | None:
        with self._lock:
            return self._sessions.get(session_id)

    def snapshot(self) -> list[SessionInfo]:
        """Diagnostic view of every registered session, oldest first."""
        with self._lock:
            sessions = list(self._sessions.values())
        return [session.info() for session in sessions]

    async def close_all(self) -> None:
        """Stop accepting sessions and tear down every registered one.

        Individual cleanup failures are logged and never propagated.
        """
        with self._lock:
            self._accepting = False
            sessions = list(self._sessions.values())

        if sessions:
            logger.info("Closing %d active session(s)", len(sessions))
        results = await asyncio.gather(
            *(s.cleanup(CloseCode.GOING_AWAY, "Server shutting down") for s in sessions),
            return_exceptions=True,
        )
        for session, result in zip(sessions, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Error closing session %s: %r", session.session_id, result,
                    exc_info=result,
                )

        with self._lock:
            self._sessions.clear()
        logger.info("All sessions closed")

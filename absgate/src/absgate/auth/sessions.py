"""
Agent Session Management

Provides:
- One active session per agent (starting a new one closes the previous)
- Idle timeout, applied lazily when the active session is read
- Activity tracking (touch on read)
"""

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from absgate.core.clock import TimeProvider, time_provider as default_time_provider
from absgate.core.crypto import generate_uuid
from absgate.monitoring.logging import AuditLogger


class SessionStatus(str, Enum):
    """Status of an agent session."""
    ACTIVE = "active"
    CLOSED = "closed"
    TIMEOUT = "timeout"


@dataclass
class AgentSession:
    """An agent's working session."""
    session_id: str
    agent_id: str
    start_time: datetime
    last_active: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
    status: SessionStatus = SessionStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def idle_for(self, now: datetime) -> timedelta:
        return now - self.last_active

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "agent_id": self.agent_id,
            "start_time": self.start_time.isoformat(),
            "last_active": self.last_active.isoformat(),
            "metadata": dict(self.metadata),
            "status": self.status.value,
        }


class SessionManager:
    """
    Tracks agent sessions.

    The agent -> session index only ever points at an active session.
    Closed and timed-out sessions stay retrievable by id until
    cleanup_closed_sessions() drops them.
    """

    DEFAULT_IDLE_TIMEOUT = timedelta(minutes=30)

    def __init__(
        self,
        idle_timeout: Optional[timedelta] = None,
        time_provider: Optional[TimeProvider] = None,
    ):
        self.idle_timeout = idle_timeout or self.DEFAULT_IDLE_TIMEOUT
        self._time = time_provider or default_time_provider

        self._sessions: Dict[str, AgentSession] = {}  # session_id -> AgentSession
        self._agent_sessions: Dict[str, str] = {}  # agent_id -> active session_id
        self._lock = threading.Lock()
        self._audit = AuditLogger()

    def start_session(self, agent_id: str, metadata: Optional[Dict[str, Any]] = None) -> AgentSession:
        """Start a session, force-closing the agent's current one if any."""
        now = self._time.now()
        session = AgentSession(
            session_id=generate_uuid(),
            agent_id=agent_id,
            start_time=now,
            last_active=now,
            metadata=dict(metadata or {}),
        )

        with self._lock:
            previous_id = self._agent_sessions.get(agent_id)
            if previous_id is not None:
                self._close_locked(previous_id, SessionStatus.CLOSED)

            self._sessions[session.session_id] = session
            self._agent_sessions[agent_id] = session.session_id
            snapshot = replace(session)

        if previous_id is not None:
            self._audit.log_session_event("session_replaced", agent_id, previous_id)
        self._audit.log_session_event("session_started", agent_id, session.session_id)
        return snapshot

    def get_session(self, session_id: str) -> Optional[AgentSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            return replace(session) if session is not None else None

    def get_active_session(self, agent_id: str) -> Optional[AgentSession]:
        """
        The agent's active session, touched.

        A session idle longer than the timeout is marked TIMEOUT and None is
        returned.
        """
        now = self._time.now()
        timed_out = None

        with self._lock:
            session_id = self._agent_sessions.get(agent_id)
            if session_id is None:
                return None
            session = self._sessions.get(session_id)
            if session is None:
                del self._agent_sessions[agent_id]
                return None

            if session.idle_for(now) > self.idle_timeout:
                self._close_locked(session_id, SessionStatus.TIMEOUT)
                timed_out = session_id
                result = None
            else:
                session.last_active = now
                result = replace(session)

        if timed_out is not None:
            self._audit.log_session_event("session_timeout", agent_id, timed_out)
        return result

    def touch(self, session_id: str) -> bool:
        """Refresh last_active of an active session. Returns False otherwise."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_active:
                return False
            session.last_active = self._time.now()
            return True

    def close_session(self, session_id: str) -> bool:
        """
        Close a session. Idempotent.

        Returns True if the session was active before the call.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            was_active = session is not None and session.is_active
            self._close_locked(session_id, SessionStatus.CLOSED)

        if was_active:
            self._audit.log_session_event("session_closed", session.agent_id, session_id)
        return was_active

    def _close_locked(self, session_id: str, status: SessionStatus) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        if session.is_active:
            session.status = status
        if self._agent_sessions.get(session.agent_id) == session_id:
            del self._agent_sessions[session.agent_id]

    def get_active_session_count(self) -> int:
        with self._lock:
            return len(self._agent_sessions)

    def cleanup_closed_sessions(self) -> int:
        """Drop closed and timed-out sessions. Returns the number removed."""
        with self._lock:
            stale = [sid for sid, s in self._sessions.items() if not s.is_active]
            for sid in stale:
                del self._sessions[sid]
            return len(stale)

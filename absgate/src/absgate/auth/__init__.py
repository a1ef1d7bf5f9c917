"""
Agent session tracking.
"""

from absgate.auth.sessions import SessionManager, AgentSession, SessionStatus

__all__ = ["SessionManager", "AgentSession", "SessionStatus"]

"""Business logic services."""

from shifa.services.sessions import SessionStore, session_store
from shifa.services.triage import SessionState, TriageSession

__all__ = [
    "SessionStore",
    "session_store",
    "SessionState",
    "TriageSession",
]

"""FastAPI dependency injection utilities."""

from typing import Annotated

from fastapi import Depends, HTTPException, status

from shifa.core.exceptions import SessionNotFoundError
from shifa.services.sessions import SessionStore, session_store
from shifa.services.triage import TriageSession


def get_session_store() -> SessionStore:
    """Get the process-wide session store."""
    return session_store


Store = Annotated[SessionStore, Depends(get_session_store)]


def get_triage_session(session_id: str, store: Store) -> TriageSession:
    """Get a triage session by path id.

    Raises:
        HTTPException: If the session does not exist
    """
    try:
        return store.get(session_id)
    except SessionNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        ) from None


CurrentSession = Annotated[TriageSession, Depends(get_triage_session)]

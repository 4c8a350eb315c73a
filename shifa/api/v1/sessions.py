"""Assessment session endpoints."""

from fastapi import APIRouter, Response, status

from shifa.api.deps import CurrentSession, Store
from shifa.schemas.triage import (
    AnswerSubmit,
    RecordRead,
    SessionCreate,
    SessionRead,
    TriageResultRead,
)

router = APIRouter()


@router.post(
    "",
    response_model=SessionRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create session",
    description="Create an assessment session for a triage profile",
)
async def create_session(store: Store, payload: SessionCreate | None = None) -> SessionRead:
    """Create a new assessment session.

    Returns 503 if the profile's triage rules cannot be loaded.
    """
    session = await store.acreate(payload.profile if payload else None)
    return SessionRead.from_session(session)


@router.get(
    "/{session_id}",
    response_model=SessionRead,
    summary="Get session",
)
async def get_session(session: CurrentSession) -> SessionRead:
    """Get session state, current step and progress."""
    return SessionRead.from_session(session)


@router.post(
    "/{session_id}/start",
    response_model=SessionRead,
    summary="Start assessment",
)
async def start_session(session: CurrentSession) -> SessionRead:
    """Start the assessment with an empty patient record."""
    session.start()
    return SessionRead.from_session(session)


@router.post(
    "/{session_id}/answers",
    response_model=SessionRead,
    summary="Submit answer",
    description="Record one answer; may end the assessment early on a critical finding",
)
async def submit_answer(payload: AnswerSubmit, session: CurrentSession) -> SessionRead:
    """Submit an answer for a patient record field.

    Answers for fields that no step asks about are ignored.
    """
    session.answer(payload.field, payload.value)
    return SessionRead.from_session(session)


@router.post(
    "/{session_id}/steps/{field}/complete",
    response_model=SessionRead,
    summary="Complete multiple-choice step",
)
async def complete_step(field: str, session: CurrentSession) -> SessionRead:
    """Commit the pending selection of a multiple-choice step."""
    session.complete_step(field)
    return SessionRead.from_session(session)


@router.post(
    "/{session_id}/back",
    response_model=SessionRead,
    summary="Go back one step",
    description="Undo the most recently committed answer so its step is asked again",
)
async def go_back(session: CurrentSession) -> SessionRead:
    """Undo the last committed step of an assessment in progress."""
    session.go_back()
    return SessionRead.from_session(session)


@router.post(
    "/{session_id}/restart",
    response_model=SessionRead,
    summary="Restart assessment",
)
async def restart_session(session: CurrentSession) -> SessionRead:
    """Discard the patient record and return to the not-started state."""
    session.restart()
    return SessionRead.from_session(session)


@router.get(
    "/{session_id}/result",
    response_model=TriageResultRead,
    summary="Get triage result",
    description="Only available once the assessment has completed or halted",
)
async def get_result(session: CurrentSession) -> TriageResultRead:
    """Get the final triage result."""
    return TriageResultRead.from_result(session.get_result(), session)


@router.get(
    "/{session_id}/record",
    response_model=RecordRead,
    summary="Get patient record",
)
async def get_record(session: CurrentSession) -> RecordRead:
    """Get a snapshot of the patient record collected so far."""
    return RecordRead(
        id=session.session_id,
        state=session.state,
        record=dict(session.get_record()),
    )


@router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete session",
)
async def delete_session(session: CurrentSession, store: Store) -> Response:
    """Discard a session."""
    store.delete(session.session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

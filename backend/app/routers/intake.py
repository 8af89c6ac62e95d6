"""
Intake API Routes

Resumable six-step intake wizard for Party A and Party B.
Sessions may be started without a token; a token only attributes the session.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import Caller, get_optional_caller
from ..database import get_db
from ..services.errors import MediationError
from ..services.intake import CaseFinalizer, IntakeSessionStore, IntakeStepProcessor, serialize_session
from .common import http_error


router = APIRouter(prefix="/intake", tags=["intake"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class CreateSessionRequest(BaseModel):
    user_id: Optional[str] = Field(None, description="Submitting user, when not taken from the token")


class JoinCaseRequest(BaseModel):
    parent_session_id: str = Field(..., description="Party A session to join")
    user_id: Optional[str] = None


class SubmitCaseRequest(BaseModel):
    submitter_user_id: Optional[str] = None


def _user_id(caller: Optional[Caller], fallback: Optional[str]) -> Optional[str]:
    return caller.user_id if caller else fallback


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/sessions", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: Optional[CreateSessionRequest] = None,
    db: Session = Depends(get_db),
    caller: Optional[Caller] = Depends(get_optional_caller),
):
    """Start a new Party A intake session at step 1."""
    user_id = _user_id(caller, request.user_id if request else None)
    session = IntakeSessionStore(db).create_session(user_id=user_id)
    return serialize_session(session)


@router.get("/sessions/{session_id}", response_model=dict)
async def get_session(session_id: str, db: Session = Depends(get_db)):
    """Reopen a draft: current step, completed steps and the saved draft."""
    try:
        session = IntakeSessionStore(db).get_session(session_id)
    except MediationError as e:
        raise http_error(e)
    return serialize_session(session)


@router.post("/sessions/join", response_model=dict, status_code=status.HTTP_201_CREATED)
async def join_case(
    request: JoinCaseRequest,
    db: Session = Depends(get_db),
    caller: Optional[Caller] = Depends(get_optional_caller),
):
    """Join a Party A session as Party B. One Party B per case."""
    try:
        session = IntakeSessionStore(db).join_case(
            request.parent_session_id,
            user_id=_user_id(caller, request.user_id),
        )
    except MediationError as e:
        raise http_error(e)
    return serialize_session(session)


@router.post("/sessions/{session_id}/steps/{step_id}", response_model=dict)
async def submit_step(
    session_id: str,
    step_id: int,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
):
    """
    Validate and save one step.

    Returns next_step (step_id + 1, or "final_submission" after step 6).
    A 422 response carries field-level errors and leaves the session untouched.
    """
    try:
        return IntakeStepProcessor(db).submit_step(session_id, step_id, payload)
    except MediationError as e:
        raise http_error(e)


@router.post("/sessions/{session_id}/submit", response_model=dict)
async def submit_case(
    session_id: str,
    request: Optional[SubmitCaseRequest] = None,
    db: Session = Depends(get_db),
    caller: Optional[Caller] = Depends(get_optional_caller),
):
    """Finalize the session into a case. Safe to retry; returns the same case_id."""
    try:
        return CaseFinalizer(db).finalize(
            session_id,
            submitter_user_id=_user_id(caller, request.submitter_user_id if request else None),
        )
    except MediationError as e:
        raise http_error(e)

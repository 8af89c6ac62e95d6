"""
Resolution API Routes

Panelist draft/submit endpoints and the case-level progress view.
Payloads are validated by the aggregator so errors keep the structured
{"error": kind, ...} shape.
"""
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..auth import Caller, get_current_caller, require_panelist
from ..database import get_db
from ..services.casework import CaseAdminService, ResolutionAggregator
from ..services.errors import MediationError
from .common import http_error


router = APIRouter(prefix="/cases", tags=["resolutions"])


@router.post("/{case_id}/resolution/submit", response_model=dict)
async def submit_resolution(
    case_id: str,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    panelist: Caller = Depends(require_panelist),
):
    """
    Submit the caller's resolution. Exactly once per panelist per case.

    resolution_complete is true only for the submission that completed
    the panel; that submission also resolves the case.
    """
    try:
        return ResolutionAggregator(db).submit_resolution(case_id, panelist.panelist_id, payload)
    except MediationError as e:
        raise http_error(e)


@router.put("/{case_id}/resolution/draft", response_model=dict)
async def save_draft(
    case_id: str,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    panelist: Caller = Depends(require_panelist),
):
    """Create or update the caller's draft. Never counts toward progress."""
    try:
        return ResolutionAggregator(db).save_draft(case_id, panelist.panelist_id, payload)
    except MediationError as e:
        raise http_error(e)


@router.get("/{case_id}/resolution/status", response_model=dict)
async def get_resolution_status(
    case_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """
    Progress {submitted, total} and every resolution on the case.

    Admins see everything. A panelist must be actively assigned and sees
    only the submission state of the other panelists.
    """
    if caller.role not in ("admin", "panelist"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin or panelist access required")
    try:
        if caller.is_admin:
            return ResolutionAggregator(db).get_status(case_id)

        case = CaseAdminService(db).get_case(case_id)
        if not any(a.panelist_id == caller.panelist_id for a in case.active_assignments):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not assigned to this case")
        return ResolutionAggregator(db).get_status(case_id, viewer_panelist_id=caller.panelist_id)
    except MediationError as e:
        raise http_error(e)

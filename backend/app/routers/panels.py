"""
Panel API Routes

Admin endpoints to attach panelists to a case and remove them.
"""
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import Caller, require_admin
from ..database import get_db
from ..services.casework import PanelAssignmentTracker, serialize_case
from ..services.errors import MediationError
from .common import http_error


router = APIRouter(prefix="/cases", tags=["panels"])


class AssignPanelRequest(BaseModel):
    panelist_ids: List[str] = Field(..., description="Panelists to attach; each is accepted or rejected on its own")


@router.post("/{case_id}/panel", response_model=dict)
async def assign_panel(
    case_id: str,
    request: AssignPanelRequest,
    db: Session = Depends(get_db),
    admin: Caller = Depends(require_admin),
):
    """
    Attach panelists.

    Returns the case plus accepted ids and per-id rejections
    (already_assigned, not_found, capacity_exceeded).
    """
    try:
        outcome = PanelAssignmentTracker(db).assign_panel(
            case_id, request.panelist_ids, actor=admin.as_actor()
        )
    except MediationError as e:
        raise http_error(e)
    return outcome.to_dict()


@router.delete("/{case_id}/panel/{panelist_id}", response_model=dict)
async def remove_panelist(
    case_id: str,
    panelist_id: str,
    db: Session = Depends(get_db),
    admin: Caller = Depends(require_admin),
):
    """Remove a panelist. Their resolution is kept but no longer counted."""
    try:
        case = PanelAssignmentTracker(db).remove_panelist(case_id, panelist_id, actor=admin.as_actor())
    except MediationError as e:
        raise http_error(e)
    return serialize_case(case)

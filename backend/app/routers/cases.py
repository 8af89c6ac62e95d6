"""
Case API Routes

Case reads, timeline, and the admin lifecycle actions: owning-admin
assignment, explicit status changes and notes.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import Caller, get_current_caller, require_admin
from ..database import get_db
from ..models.db_models import ActivityType, CaseDB, CaseStatus
from ..services.casework import CaseAdminService, serialize_case
from ..services.errors import MediationError
from .common import http_error


router = APIRouter(prefix="/cases", tags=["cases"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class UpdateStatusRequest(BaseModel):
    """Explicit admin transition. Resolving early needs feedback or next steps."""
    status: CaseStatus = Field(..., description="Target status")
    feedback: Optional[str] = Field(None, max_length=2000)
    next_steps: Optional[str] = Field(None, max_length=2000)
    resolution_details: Optional[str] = Field(None, max_length=5000)


class AssignAdminRequest(BaseModel):
    admin_id: Optional[str] = Field(None, description="Owning admin; defaults to the caller")


class AddNoteRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


def _check_can_view(case: CaseDB, caller: Caller):
    if caller.is_admin:
        return
    if caller.role == "panelist" and any(
        a.panelist_id == caller.panelist_id for a in case.active_assignments
    ):
        return
    if caller.role == "client" and caller.user_id == case.created_by:
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to view this case")


# =============================================================================
# READ ENDPOINTS
# =============================================================================

@router.get("/{case_id}", response_model=dict)
async def get_case(
    case_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """Full case record with panel, progress and notes."""
    try:
        case = CaseAdminService(db).get_case(case_id)
    except MediationError as e:
        raise http_error(e)
    _check_can_view(case, caller)
    return serialize_case(case)


@router.get("/{case_id}/timeline", response_model=dict)
async def get_timeline(
    case_id: str,
    activity_type: Optional[ActivityType] = Query(None, alias="type"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """Newest-first case activity, paginated."""
    service = CaseAdminService(db)
    try:
        _check_can_view(service.get_case(case_id), caller)
        return service.list_timeline(case_id, activity_type=activity_type, page=page, limit=limit)
    except MediationError as e:
        raise http_error(e)


# =============================================================================
# ADMIN ENDPOINTS
# =============================================================================

@router.patch("/{case_id}/status", response_model=dict)
async def update_status(
    case_id: str,
    request: UpdateStatusRequest,
    db: Session = Depends(get_db),
    admin: Caller = Depends(require_admin),
):
    """Move the case along the lifecycle graph."""
    try:
        case = CaseAdminService(db).update_status(
            case_id,
            request.status,
            actor=admin.as_actor(),
            feedback=request.feedback,
            next_steps=request.next_steps,
            resolution_details=request.resolution_details,
        )
    except MediationError as e:
        raise http_error(e)
    return serialize_case(case)


@router.patch("/{case_id}/assign", response_model=dict)
async def assign_admin(
    case_id: str,
    request: Optional[AssignAdminRequest] = None,
    db: Session = Depends(get_db),
    admin: Caller = Depends(require_admin),
):
    """Set the owning admin. An open case becomes assigned."""
    admin_id = (request.admin_id if request else None) or admin.user_id
    try:
        case = CaseAdminService(db).assign_admin(case_id, admin_id, actor=admin.as_actor())
    except MediationError as e:
        raise http_error(e)
    return serialize_case(case)


@router.patch("/{case_id}/unassign", response_model=dict)
async def unassign_admin(
    case_id: str,
    db: Session = Depends(get_db),
    admin: Caller = Depends(require_admin),
):
    """Clear the owning admin. Status is unchanged."""
    try:
        case = CaseAdminService(db).unassign_admin(case_id, actor=admin.as_actor())
    except MediationError as e:
        raise http_error(e)
    return serialize_case(case)


@router.post("/{case_id}/notes", response_model=dict, status_code=status.HTTP_201_CREATED)
async def add_note(
    case_id: str,
    request: AddNoteRequest,
    db: Session = Depends(get_db),
    admin: Caller = Depends(require_admin),
):
    """Append an admin note. Works on closed cases too."""
    try:
        case = CaseAdminService(db).add_note(case_id, request.content, actor=admin.as_actor())
    except MediationError as e:
        raise http_error(e)
    return serialize_case(case)

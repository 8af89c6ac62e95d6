"""
Resolution Aggregator

Collects one resolution per active panelist per case and rolls the
submissions up into case progress.

progress = {submitted, total}
- total: currently active panel assignments
- submitted: submitted resolutions among those active panelists only

Progress is recomputed from the store inside the same transaction as the
write that triggered it, while the case row is locked. That makes the
completing submission the only one that can observe submitted == total.
Recompute is also pull-safe: status reads and panelist removals run it too.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, model_validator
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ...models.db_models import (
    ActivityType, CaseDB, CaseResolutionDB, CaseStatus, ResolutionProgressState,
    ResolutionStatus, SubmissionState, utcnow,
)
from ..errors import (
    AlreadySubmitted, ConcurrentModification, InvalidTransition, NotFound, ValidationError,
)
from .activity_log import Actor, CaseActivityLog
from .queries import get_case
from .state_machine import AutomaticTransitionTriggers, CaseStateMachine

logger = logging.getLogger(__name__)

MIN_RESOLUTION_NOTES_LENGTH = 50
MAX_RESOLUTION_NOTES_LENGTH = 5000
MAX_OUTCOME_LENGTH = 2000
MAX_RECOMMENDATIONS_LENGTH = 2000

# Statuses in which panelists may write resolutions
_WRITABLE_STATUSES = (CaseStatus.PANEL_ASSIGNED, CaseStatus.IN_PROGRESS)

# Withheld from other panelists in the status view
_PRIVATE_RESOLUTION_FIELDS = ("resolution_status", "notes", "outcome", "recommendations")


# =============================================================================
# PAYLOADS
# =============================================================================

class ResolutionSubmission(BaseModel):
    """Final resolution. Notes must be substantive; outcome required when resolved."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    resolution_status: ResolutionStatus
    notes: str = Field(..., min_length=MIN_RESOLUTION_NOTES_LENGTH, max_length=MAX_RESOLUTION_NOTES_LENGTH)
    outcome: Optional[str] = Field(None, max_length=MAX_OUTCOME_LENGTH)
    recommendations: Optional[str] = Field(None, max_length=MAX_RECOMMENDATIONS_LENGTH)

    @model_validator(mode="after")
    def outcome_required_when_resolved(self):
        if self.resolution_status == ResolutionStatus.RESOLVED and not self.outcome:
            raise ValueError("outcome is required when resolution_status is 'resolved'")
        return self


class ResolutionDraft(BaseModel):
    """Work-in-progress resolution. Everything optional; length caps still apply."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    resolution_status: Optional[ResolutionStatus] = None
    notes: Optional[str] = Field(None, max_length=MAX_RESOLUTION_NOTES_LENGTH)
    outcome: Optional[str] = Field(None, max_length=MAX_OUTCOME_LENGTH)
    recommendations: Optional[str] = Field(None, max_length=MAX_RECOMMENDATIONS_LENGTH)


@dataclass(frozen=True)
class ResolutionProgress:
    submitted: int
    total: int

    @property
    def complete(self) -> bool:
        return self.total > 0 and self.submitted == self.total

    @property
    def state(self) -> ResolutionProgressState:
        if self.complete:
            return ResolutionProgressState.COMPLETE
        if self.submitted == 0:
            return ResolutionProgressState.NOT_STARTED
        return ResolutionProgressState.PARTIAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submitted": self.submitted,
            "total": self.total,
            "pending": self.total - self.submitted,
            "complete": self.complete,
        }


def _parse(model, payload: Union[BaseModel, Dict[str, Any]]):
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_unset=True)
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, message="Invalid resolution payload")


def serialize_resolution(resolution: CaseResolutionDB) -> Dict[str, Any]:
    return {
        "id": resolution.id,
        "case_id": resolution.case_id,
        "panelist_id": resolution.panelist_id,
        "submission_state": resolution.submission_state.value,
        "resolution_status": resolution.resolution_status.value if resolution.resolution_status else None,
        "notes": resolution.notes,
        "outcome": resolution.outcome,
        "recommendations": resolution.recommendations,
        "submitted_at": resolution.submitted_at.isoformat() if resolution.submitted_at else None,
        "last_modified_at": resolution.last_modified_at.isoformat() if resolution.last_modified_at else None,
    }


# =============================================================================
# AGGREGATOR
# =============================================================================

class ResolutionAggregator:
    """
    Panelist resolutions and case-level progress.

    AUTHORITY:
    - PANELIST: save_draft, submit_resolution (active assignment required)
    - SYSTEM: in_progress -> resolved once progress is complete
    """

    def __init__(self, db: Session):
        self.db = db
        self.state_machine = CaseStateMachine(db)
        self.activity_log = CaseActivityLog(db)

    # =========================================================================
    # PROGRESS
    # =========================================================================

    def compute_progress(self, case: CaseDB) -> ResolutionProgress:
        """Count submitted resolutions among currently active panelists."""
        active_ids = [a.panelist_id for a in case.active_assignments]
        if not active_ids:
            return ResolutionProgress(submitted=0, total=0)

        # Session is autoflush=False; pending resolution rows must reach the DB first
        self.db.flush()
        submitted = (
            self.db.query(CaseResolutionDB)
            .filter(
                CaseResolutionDB.case_id == case.id,
                CaseResolutionDB.panelist_id.in_(active_ids),
                CaseResolutionDB.submission_state == SubmissionState.SUBMITTED,
            )
            .count()
        )
        return ResolutionProgress(submitted=submitted, total=len(active_ids))

    def recompute(self, case: CaseDB) -> ResolutionProgress:
        """
        Refresh the case rollup and resolve the case if every active panelist
        has submitted. Does not commit; the case row must already be locked.
        """
        progress = self.compute_progress(case)
        if (
            case.resolution_total != progress.total
            or case.resolution_submitted != progress.submitted
            or case.resolution_state != progress.state
        ):
            case.resolution_total = progress.total
            case.resolution_submitted = progress.submitted
            case.resolution_state = progress.state
            case.updated_at = utcnow()

        AutomaticTransitionTriggers.resolution_complete(self.state_machine, case)
        return progress

    def sync_resolution(self, case_id: str) -> ResolutionProgress:
        """Pull-safe recompute: lock, recompute, commit."""
        case = get_case(self.db, case_id, for_update=True)
        if case.is_closed:
            return self.compute_progress(case)
        progress = self.recompute(case)
        self._commit()
        return progress

    def get_status(self, case_id: str, viewer_panelist_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Progress and every resolution on the case, after a pull-safe recompute.

        With viewer_panelist_id, other panelists' entries carry only their
        submission state, never their content.
        """
        progress = self.sync_resolution(case_id)
        case = get_case(self.db, case_id)
        active_ids = {a.panelist_id for a in case.active_assignments}

        return {
            "case_id": case.id,
            "case_status": case.status.value,
            "resolution_state": progress.state.value,
            "progress": progress.to_dict(),
            "resolutions": [
                self._status_entry(r, active_ids, viewer_panelist_id)
                for r in case.resolutions
            ],
        }

    # =========================================================================
    # PANELIST WRITES
    # =========================================================================

    def save_draft(
        self,
        case_id: str,
        panelist_id: str,
        payload: Union[ResolutionDraft, Dict[str, Any]],
    ) -> Dict[str, Any]:
        """
        Create or update this panelist's draft resolution.

        Never changes submitted counts and never resolves the case. The first
        draft on a panel_assigned case marks it in_progress.
        """
        draft = _parse(ResolutionDraft, payload)
        case = self._lock_case_for_panelist(case_id, panelist_id)

        resolution = self._find(case_id, panelist_id)
        if resolution is not None and resolution.is_submitted:
            raise AlreadySubmitted(
                "Resolution has already been submitted and can no longer be edited",
                ref=panelist_id,
            )
        self._check_writable(case)

        if resolution is None:
            resolution = CaseResolutionDB(
                id=str(uuid4()),
                case_id=case_id,
                panelist_id=panelist_id,
                submission_state=SubmissionState.DRAFT,
            )
            self.db.add(resolution)

        for field_name, value in draft.model_dump(exclude_unset=True).items():
            setattr(resolution, field_name, value)
        resolution.last_modified_at = utcnow()

        actor = Actor.panelist(panelist_id)
        AutomaticTransitionTriggers.panelist_activity(self.state_machine, case, actor)
        self.activity_log.record(
            case_id=case_id,
            activity_type=ActivityType.RESOLUTION_SAVED,
            actor=actor,
            description="Panelist saved a draft resolution",
        )
        case.updated_at = utcnow()

        self._commit()
        logger.info(f"Draft resolution saved: case={case_id} panelist={panelist_id}")
        return serialize_resolution(resolution)

    def submit_resolution(
        self,
        case_id: str,
        panelist_id: str,
        payload: Union[ResolutionSubmission, Dict[str, Any]],
    ) -> Dict[str, Any]:
        """
        Submit this panelist's resolution. Exactly once per (case, panelist).

        Returns {resolution, resolution_complete, progress}. When the
        submission completes progress, the case moves in_progress -> resolved.
        """
        submission = _parse(ResolutionSubmission, payload)
        case = self._lock_case_for_panelist(case_id, panelist_id)

        resolution = self._find(case_id, panelist_id)
        if resolution is not None and resolution.is_submitted:
            logger.warning(f"Duplicate resolution submit: case={case_id} panelist={panelist_id}")
            raise AlreadySubmitted(
                "Resolution has already been submitted. Contact an admin to make changes.",
                ref=panelist_id,
            )
        self._check_writable(case)

        now = utcnow()
        values = {
            "resolution_status": submission.resolution_status,
            "notes": submission.notes,
            "outcome": submission.outcome,
            "recommendations": submission.recommendations,
            "submission_state": SubmissionState.SUBMITTED,
            "submitted_at": now,
            "last_modified_at": now,
        }

        if resolution is None:
            resolution = CaseResolutionDB(id=str(uuid4()), case_id=case_id, panelist_id=panelist_id, **values)
            self.db.add(resolution)
            try:
                self.db.flush()
            except IntegrityError:
                self.db.rollback()
                raise ConcurrentModification(
                    "Another resolution write for this panelist landed first", ref=panelist_id
                )
        else:
            # Set submitted only if not already submitted; zero rows means a prior submit won
            result = self.db.execute(
                update(CaseResolutionDB)
                .where(
                    CaseResolutionDB.id == resolution.id,
                    CaseResolutionDB.submission_state != SubmissionState.SUBMITTED,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                logger.warning(f"Duplicate resolution submit: case={case_id} panelist={panelist_id}")
                raise AlreadySubmitted(
                    "Resolution has already been submitted. Contact an admin to make changes.",
                    ref=panelist_id,
                )
            self.db.refresh(resolution)

        actor = Actor.panelist(panelist_id)
        AutomaticTransitionTriggers.panelist_activity(self.state_machine, case, actor)
        self.activity_log.record(
            case_id=case_id,
            activity_type=ActivityType.RESOLUTION_SUBMITTED,
            actor=actor,
            description="Panelist submitted case resolution",
            metadata={"resolution_status": submission.resolution_status.value},
            is_important=True,
        )

        progress = self.recompute(case)
        case.updated_at = utcnow()
        self._commit()

        logger.info(
            f"Resolution submitted: case={case_id} panelist={panelist_id} "
            f"progress={progress.submitted}/{progress.total}"
        )
        return {
            "resolution": serialize_resolution(resolution),
            "resolution_complete": progress.complete,
            "progress": progress.to_dict(),
        }

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _status_entry(self, resolution: CaseResolutionDB, active_ids, viewer_panelist_id: Optional[str]) -> Dict[str, Any]:
        entry = {**serialize_resolution(resolution), "panelist_active": resolution.panelist_id in active_ids}
        if viewer_panelist_id is not None and resolution.panelist_id != viewer_panelist_id:
            for field_name in _PRIVATE_RESOLUTION_FIELDS:
                entry.pop(field_name)
        return entry

    def _find(self, case_id: str, panelist_id: str) -> Optional[CaseResolutionDB]:
        return (
            self.db.query(CaseResolutionDB)
            .filter(
                CaseResolutionDB.case_id == case_id,
                CaseResolutionDB.panelist_id == panelist_id,
            )
            .first()
        )

    def _lock_case_for_panelist(self, case_id: str, panelist_id: str) -> CaseDB:
        case = get_case(self.db, case_id, for_update=True)
        if not any(a.panelist_id == panelist_id for a in case.active_assignments):
            raise NotFound(
                f"Panelist {panelist_id} is not actively assigned to case {case_id}",
                ref=panelist_id,
            )
        return case

    def _check_writable(self, case: CaseDB):
        if case.status not in _WRITABLE_STATUSES:
            raise InvalidTransition(
                f"Resolutions cannot be written while the case is {case.status.value}",
                from_status=case.status.value,
                ref=case.id,
            )

    def _commit(self):
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConcurrentModification("Case was modified concurrently; retry the request")

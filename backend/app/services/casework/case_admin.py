"""
Case Admin Service

Admin-facing case mutations: owning-admin assignment, explicit status
changes, notes. Status changes go through CaseStateMachine; this service
only adds the admin bookkeeping around them.
"""
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ...models.db_models import ActivityType, CaseDB, CaseNoteDB, CaseStatus, utcnow
from ..errors import ConcurrentModification, InvalidTransition, ValidationError
from .activity_log import Actor, CaseActivityLog
from .queries import get_case
from .state_machine import CaseStateMachine

logger = logging.getLogger(__name__)


class CaseAdminService:
    """Admin operations on a single case. Every write locks the case row."""

    def __init__(self, db: Session):
        self.db = db
        self.state_machine = CaseStateMachine(db)
        self.activity_log = CaseActivityLog(db)

    def get_case(self, case_id: str) -> CaseDB:
        return get_case(self.db, case_id)

    def list_timeline(
        self,
        case_id: str,
        activity_type: Optional[ActivityType] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        get_case(self.db, case_id)
        return self.activity_log.timeline(case_id, activity_type=activity_type, page=page, limit=limit)

    def assign_admin(self, case_id: str, admin_id: str, actor: Actor) -> CaseDB:
        """
        Record the owning admin. An open case moves to assigned; later
        statuses keep their status and only record the new owner.
        """
        case = get_case(self.db, case_id, for_update=True)
        self._reject_closed(case)

        now = utcnow()
        case.assigned_to = admin_id
        case.assigned_at = now
        case.updated_at = now

        self.activity_log.record(
            case_id=case_id,
            activity_type=ActivityType.CASE_ASSIGNED,
            actor=actor,
            description=f"Case assigned to admin {admin_id}",
            metadata={"assigned_to": admin_id},
        )

        if case.status == CaseStatus.OPEN:
            self.state_machine.transition(case, CaseStatus.ASSIGNED, trigger="admin_assigned", actor=actor)

        self._commit()
        logger.info(f"Case {case_id} assigned to admin {admin_id}")
        return case

    def unassign_admin(self, case_id: str, actor: Actor) -> CaseDB:
        """Clear the owning admin. Status is never moved backwards."""
        case = get_case(self.db, case_id, for_update=True)
        self._reject_closed(case)

        previous = case.assigned_to
        case.assigned_to = None
        case.assigned_at = None
        case.updated_at = utcnow()

        self.activity_log.record(
            case_id=case_id,
            activity_type=ActivityType.CASE_UNASSIGNED,
            actor=actor,
            description="Case unassigned",
            metadata={"previous_admin": previous},
        )

        self._commit()
        logger.info(f"Case {case_id} unassigned from admin {previous}")
        return case

    def update_status(
        self,
        case_id: str,
        status: CaseStatus,
        actor: Actor,
        feedback: Optional[str] = None,
        next_steps: Optional[str] = None,
        resolution_details: Optional[str] = None,
    ) -> CaseDB:
        """
        Explicit admin transition.

        Resolving from in_progress is an override and needs feedback or
        next-steps text. Feedback, next steps and resolution details are kept
        as case notes.
        """
        case = get_case(self.db, case_id, for_update=True)
        override_text = " ".join(t for t in (feedback, next_steps) if t and t.strip()) or None

        self.state_machine.transition(
            case,
            status,
            trigger="admin_update",
            actor=actor,
            override_text=override_text,
        )

        labelled = (
            ("Feedback", feedback),
            ("Next steps", next_steps),
            ("Resolution details", resolution_details),
        )
        for label, text in labelled:
            if text and text.strip():
                self._append_note(case, f"{label}: {text.strip()}", actor)

        self._commit()
        return case

    def add_note(self, case_id: str, content: str, actor: Actor) -> CaseDB:
        """Append an admin note. Allowed in every status, closed included."""
        if not content or not content.strip():
            raise ValidationError(
                "Note content is required",
                errors=[{"field": "content", "message": "must not be empty"}],
                field="content",
            )

        case = get_case(self.db, case_id, for_update=True)
        self._append_note(case, content.strip(), actor)
        self.activity_log.record(
            case_id=case_id,
            activity_type=ActivityType.NOTE_ADDED,
            actor=actor,
            description="Admin added a note",
        )

        self._commit()
        logger.info(f"Note added to case {case_id}")
        return case

    def _append_note(self, case: CaseDB, content: str, actor: Actor):
        case.notes.append(CaseNoteDB(
            id=str(uuid4()),
            content=content,
            created_by=actor.actor_id,
            created_at=utcnow(),
        ))
        case.updated_at = utcnow()

    def _reject_closed(self, case: CaseDB):
        if case.is_closed:
            raise InvalidTransition(
                "Closed cases only accept notes",
                from_status=case.status.value,
                ref=case.id,
            )

    def _commit(self):
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConcurrentModification("Case was modified concurrently; retry the request")

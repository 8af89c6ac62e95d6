"""
Case Finalizer

Turns a completed intake session into a durable case.

Party A: creates the case (status open) from the session draft.
Party B: attaches the draft to the case its parent session created.

Finalizing is idempotent per session: once a session holds a case_id, later
calls return that id without repeating any business logic.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.db_models import (
    ActivityType, CaseDB, CasePriority, CaseStatus, CaseStatusLogDB, CaseType,
    IntakeSessionDB, PartyRole, SessionStatus, utcnow,
)
from ...models.intake_steps import STEP_KEYS, TOTAL_INTAKE_STEPS
from ..casework.activity_log import Actor, CaseActivityLog
from ..casework.queries import get_case
from ..errors import (
    AlreadyJoined, ConcurrentModification, IncompleteSubmission, InvalidTransition, NotFound,
)
from .session_store import IntakeSessionStore

logger = logging.getLogger(__name__)

TITLE_DESCRIPTION_CHARS = 50

CONFLICT_TYPE_TO_CASE_TYPE = {
    "Marital Conflict": CaseType.MARRIAGE,
    "Divorce Proceedings": CaseType.MARRIAGE,
    "Property Division": CaseType.PROPERTY,
    "Financial Disputes": CaseType.PROPERTY,
    "Land Dispute": CaseType.LAND,
    "Child Custody": CaseType.FAMILY,
    "Communication Issues": CaseType.FAMILY,
    "Family Mediation": CaseType.FAMILY,
    "Other": CaseType.FAMILY,
}

URGENCY_TO_PRIORITY = {
    "low": CasePriority.LOW,
    "medium": CasePriority.MEDIUM,
    "high": CasePriority.HIGH,
    "urgent": CasePriority.URGENT,
}


def generate_case_id(now: Optional[datetime] = None) -> str:
    """CASE-<year>-<8 hex>"""
    year = (now or utcnow()).year
    return f"CASE-{year}-{uuid4().hex[:8].upper()}"


class CaseFinalizer:
    """Converts completed sessions into cases."""

    def __init__(self, db: Session):
        self.db = db
        self.store = IntakeSessionStore(db)
        self.activity_log = CaseActivityLog(db)

    def finalize(self, session_id: str, submitter_user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Finalize a session.

        Returns:
            {case_id, role}

        Raises:
            IncompleteSubmission: a required step is missing (first one named)
            NotFound: Party B session whose parent has no case yet
            AlreadyJoined: the parent's case already has a Party B submission
            InvalidTransition: the parent's case is closed
        """
        session = self.store.get_session(session_id, for_update=True)

        if session.case_id:
            logger.info(f"Session {session_id} already finalized as {session.case_id}")
            return {"case_id": session.case_id, "role": session.role.value}

        completed = set(session.completed_steps or [])
        for step_id in range(1, TOTAL_INTAKE_STEPS + 1):
            if step_id not in completed:
                raise IncompleteSubmission(
                    f"Step {step_id} must be completed before submission",
                    missing_step=step_id,
                    ref=session_id,
                )

        if session.role == PartyRole.PARTY_B:
            case = self._attach_party_b(session, submitter_user_id)
        else:
            case = self._create_case(session, submitter_user_id)

        now = utcnow()
        session.case_id = case.id
        session.status = SessionStatus.ARCHIVED
        session.submitted_at = now
        session.last_modified = now

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConcurrentModification(
                "Session was finalized concurrently; retry to read the result", ref=session_id
            )

        logger.info(f"Session {session_id} finalized into {case.id} as {session.role.value}")
        return {"case_id": case.id, "role": session.role.value}

    def _create_case(self, session: IntakeSessionDB, submitter_user_id: Optional[str]) -> CaseDB:
        draft = session.draft
        overview = draft[STEP_KEYS[1]]
        parties = draft[STEP_KEYS[2]]["parties"]
        now = utcnow()

        description = overview["description"]
        case = CaseDB(
            id=generate_case_id(now),
            title=f"{overview['conflict_type']} - {description[:TITLE_DESCRIPTION_CHARS]}",
            description=description,
            case_type=CONFLICT_TYPE_TO_CASE_TYPE.get(overview["conflict_type"], CaseType.FAMILY),
            priority=URGENCY_TO_PRIORITY.get(overview["urgency_level"], CasePriority.MEDIUM),
            created_by=session.user_id or submitter_user_id,
            status=CaseStatus.OPEN,
            parties=[
                {"name": p["name"], "contact": p["email"], "role": p["role"]}
                for p in parties
            ],
            party_a_session_id=session.id,
            party_a_submission=dict(draft),
            created_at=now,
            updated_at=now,
        )
        self.db.add(case)

        actor = Actor.client(case.created_by)
        self.db.add(CaseStatusLogDB(
            id=str(uuid4()),
            case_id=case.id,
            from_status=None,
            to_status=CaseStatus.OPEN,
            trigger="case_created",
            actor_type=actor.actor_type,
            actor_id=actor.actor_id,
        ))
        self.activity_log.record(
            case_id=case.id,
            activity_type=ActivityType.CASE_CREATED,
            actor=actor,
            description=f"Case created: {case.title}",
            metadata={"session_id": session.id, "type": case.case_type.value, "priority": case.priority.value},
            is_important=True,
        )
        # Case row must exist before the session FK points at it
        self.db.flush()
        return case

    def _attach_party_b(self, session: IntakeSessionDB, submitter_user_id: Optional[str]) -> CaseDB:
        parent = self.store.get_session(session.parent_session_id)
        if not parent.case_id:
            raise NotFound(
                "The case this session joined has not been submitted yet",
                ref=session.parent_session_id,
            )

        case = get_case(self.db, parent.case_id, for_update=True)
        if case.is_closed:
            raise InvalidTransition(
                "A closed case no longer accepts a Party B response",
                from_status=case.status.value,
                ref=case.id,
            )
        if case.party_b_submission is not None:
            raise AlreadyJoined("This case already has a Party B submission", ref=case.id)

        case.party_b_session_id = session.id
        case.party_b_submission = dict(session.draft)
        case.updated_at = utcnow()

        self.activity_log.record(
            case_id=case.id,
            activity_type=ActivityType.PARTY_JOINED,
            actor=Actor.client(session.user_id or submitter_user_id),
            description="Party B submitted their response",
            metadata={"session_id": session.id},
            is_important=True,
        )
        return case

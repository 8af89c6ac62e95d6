"""
Intake Session Store

Creates, reopens and links resumable intake sessions.

A session is owned by one submitting party until it is finalized into a
case, after which it is archived and read-only. A Party B session joins an
existing Party A session through `parent_session_id`; the UNIQUE constraint
on that column, together with a row lock on the parent, admits at most one
Party B per Party A no matter how join calls interleave.
"""
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.db_models import (
    ActivityType, CaseDB, IntakeSessionDB, PartyRole, SessionStatus, utcnow,
)
from ..casework.activity_log import Actor, CaseActivityLog
from ..errors import AlreadyJoined, NotFound

logger = logging.getLogger(__name__)


def serialize_session(session: IntakeSessionDB) -> Dict[str, Any]:
    return {
        "session_id": session.id,
        "parent_session_id": session.parent_session_id,
        "linked_session_id": session.linked_session_id,
        "role": session.role.value,
        "status": session.status.value,
        "current_step": session.current_step,
        "completed_steps": list(session.completed_steps or []),
        "draft": dict(session.draft or {}),
        "case_id": session.case_id,
        "created_at": session.created_at.isoformat() if session.created_at else None,
        "last_modified": session.last_modified.isoformat() if session.last_modified else None,
        "submitted_at": session.submitted_at.isoformat() if session.submitted_at else None,
    }


class IntakeSessionStore:
    """
    Session persistence for the intake wizard.
    The step processor and finalizer load sessions through this store.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_session(self, user_id: Optional[str] = None) -> IntakeSessionDB:
        """Start a new Party A draft at step 1."""
        now = utcnow()
        session = IntakeSessionDB(
            id=str(uuid4()),
            role=PartyRole.PARTY_A,
            user_id=user_id,
            status=SessionStatus.DRAFT,
            current_step=1,
            completed_steps=[],
            draft={},
            created_at=now,
            last_modified=now,
        )
        self.db.add(session)
        self.db.commit()

        logger.info(f"Intake session created: {session.id}")
        return session

    def get_session(self, session_id: str, for_update: bool = False) -> IntakeSessionDB:
        """Reopen a session. Raises NotFound."""
        query = self.db.query(IntakeSessionDB).filter(IntakeSessionDB.id == session_id)
        if for_update:
            query = query.with_for_update().populate_existing()

        session = query.first()
        if session is None:
            raise NotFound(f"Session {session_id} not found", ref=session_id)
        return session

    def join_case(self, parent_session_id: str, user_id: Optional[str] = None) -> IntakeSessionDB:
        """
        Open a Party B session against a Party A session.

        Raises:
            NotFound: parent missing, parent is itself Party B, or the parent's
                case already carries a Party B submission or is closed
            AlreadyJoined: the parent already has a Party B session
        """
        parent = self.get_session(parent_session_id, for_update=True)

        if parent.role != PartyRole.PARTY_A:
            raise NotFound("Only a Party A session can be joined", ref=parent_session_id)

        existing = (
            self.db.query(IntakeSessionDB)
            .filter(IntakeSessionDB.parent_session_id == parent_session_id)
            .first()
        )
        if existing is not None or parent.linked_session_id:
            logger.warning(f"Party B already joined session {parent_session_id}")
            raise AlreadyJoined(
                "Party B has already joined this case",
                ref=parent_session_id,
                details={"existing_session_id": parent.linked_session_id or existing.id},
            )

        case = None
        if parent.case_id:
            case = self.db.query(CaseDB).filter(CaseDB.id == parent.case_id).first()
            if case is not None and (case.is_closed or case.party_b_submission is not None):
                raise NotFound("This case has no open slot for a second party", ref=parent_session_id)

        now = utcnow()
        session = IntakeSessionDB(
            id=str(uuid4()),
            parent_session_id=parent_session_id,
            role=PartyRole.PARTY_B,
            user_id=user_id,
            status=SessionStatus.DRAFT,
            current_step=1,
            completed_steps=[],
            draft={},
            created_at=now,
            last_modified=now,
        )
        self.db.add(session)
        parent.linked_session_id = session.id
        parent.last_modified = now

        if case is not None:
            CaseActivityLog(self.db).record(
                case_id=case.id,
                activity_type=ActivityType.PARTY_JOINED,
                actor=Actor.client(user_id),
                description="Party B joined the case",
                metadata={"session_id": session.id},
            )

        try:
            self.db.commit()
        except IntegrityError:
            # Lost the race on the UNIQUE parent_session_id
            self.db.rollback()
            raise AlreadyJoined("Party B has already joined this case", ref=parent_session_id)

        logger.info(f"Party B session {session.id} joined {parent_session_id}")
        return session

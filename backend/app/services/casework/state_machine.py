"""
Case Lifecycle State Machine

Deterministic state machine for a mediation case.
Status only moves forward along the graph; the admin close path is the only
edge that skips predecessors. All transitions are logged immutably.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from ...models.db_models import (
    ActivityType, ActorType, CaseDB, CaseStatus, CaseStatusLogDB,
    ResolutionProgressState, utcnow,
)
from ..errors import InvalidTransition
from .activity_log import Actor, CaseActivityLog

logger = logging.getLogger(__name__)


# =============================================================================
# STATE CONFIGURATION
# =============================================================================
#
# AUTHORITY MODEL:
# `entry_authority` lists the actor types that may move a case INTO a state.
# - ADMIN: explicit admin actions (assign owner, mark underway, override, close)
# - PANELIST: first resolution activity marks work underway
# - SYSTEM: aggregator-driven resolution once every active panelist submitted
#
# =============================================================================

STATE_CONFIG = {
    CaseStatus.OPEN: {
        "description": "Case created from a completed intake session",
        "allowed_transitions": [
            CaseStatus.ASSIGNED,
            CaseStatus.PANEL_ASSIGNED,
            CaseStatus.CLOSED,
        ],
        "entry_authority": [ActorType.CLIENT, ActorType.SYSTEM],
    },
    CaseStatus.ASSIGNED: {
        "description": "Owning admin assigned",
        "allowed_transitions": [CaseStatus.PANEL_ASSIGNED, CaseStatus.CLOSED],
        "entry_authority": [ActorType.ADMIN],
    },
    CaseStatus.PANEL_ASSIGNED: {
        "description": "At least one active panelist attached",
        "allowed_transitions": [CaseStatus.IN_PROGRESS, CaseStatus.CLOSED],
        "entry_authority": [ActorType.ADMIN, ActorType.SYSTEM],
    },
    CaseStatus.IN_PROGRESS: {
        "description": "Panel work underway",
        "allowed_transitions": [CaseStatus.RESOLVED, CaseStatus.CLOSED],
        "entry_authority": [ActorType.ADMIN, ActorType.PANELIST],
    },
    CaseStatus.RESOLVED: {
        "description": "All active panelists submitted, or admin override",
        "allowed_transitions": [CaseStatus.CLOSED],
        "entry_authority": [ActorType.ADMIN, ActorType.SYSTEM],
    },
    CaseStatus.CLOSED: {
        "description": "Terminal. Only historical notes may be appended",
        "allowed_transitions": [],  # Terminal state
        "entry_authority": [ActorType.ADMIN],
    },
}

_ACTIVITY_FOR_STATUS = {
    CaseStatus.RESOLVED: ActivityType.CASE_RESOLVED,
    CaseStatus.CLOSED: ActivityType.CASE_CLOSED,
}


# =============================================================================
# STATE MACHINE
# =============================================================================

class CaseStateMachine:
    """
    Owns case status and the legal transitions between statuses.

    Core Principles:
    - A rejected transition raises InvalidTransition and mutates nothing
    - Every transition appends a status log row and a timeline entry
    - The machine never commits; the calling service owns the transaction
    """

    def __init__(self, db_session):
        """Initialize with database session."""
        self.db = db_session
        self.activity_log = CaseActivityLog(db_session)

    def get_state_config(self, status: CaseStatus) -> Dict[str, Any]:
        """Get configuration for a status."""
        return STATE_CONFIG.get(status, {})

    def can_transition(
        self,
        case: CaseDB,
        to_status: CaseStatus,
        actor: Actor,
        override_text: Optional[str] = None,
    ) -> Tuple[bool, str]:
        """
        Check if a transition is allowed for this case and actor.

        Returns (allowed, reason)
        """
        from_status = case.status
        allowed_transitions = self.get_state_config(from_status).get("allowed_transitions", [])

        if to_status not in allowed_transitions:
            return False, f"Cannot transition from {from_status.value} to {to_status.value}"

        authority = self.get_state_config(to_status).get("entry_authority", [])
        if actor.actor_type not in authority:
            return False, f"{actor.actor_type.value} may not move a case to {to_status.value}"

        if to_status == CaseStatus.ASSIGNED and not case.assigned_to:
            return False, "An owning admin must be assigned first"

        if to_status == CaseStatus.PANEL_ASSIGNED and not case.active_assignments:
            return False, "At least one active panelist is required"

        if to_status == CaseStatus.RESOLVED:
            if actor.actor_type == ActorType.SYSTEM:
                if case.resolution_state != ResolutionProgressState.COMPLETE:
                    return False, "Not every active panelist has submitted a resolution"
            elif not (override_text and override_text.strip()):
                return False, "Admin override requires feedback or next steps"

        return True, "Transition allowed"

    def transition(
        self,
        case: CaseDB,
        to_status: CaseStatus,
        trigger: str,
        actor: Actor,
        override_text: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CaseDB:
        """
        Execute a status transition.

        Raises InvalidTransition when the graph, the actor's authority or a
        guard forbids it.
        """
        from_status = case.status

        allowed, reason = self.can_transition(case, to_status, actor, override_text)
        if not allowed:
            logger.warning(f"Rejected transition for case {case.id}: {reason}")
            raise InvalidTransition(
                reason,
                from_status=from_status.value,
                to_status=to_status.value,
                ref=case.id,
            )

        # Status log entry (immutable)
        self.db.add(CaseStatusLogDB(
            id=str(uuid4()),
            case_id=case.id,
            from_status=from_status,
            to_status=to_status,
            trigger=trigger,
            actor_type=actor.actor_type,
            actor_id=actor.actor_id,
        ))

        # Timeline entry
        self.activity_log.record(
            case_id=case.id,
            activity_type=_ACTIVITY_FOR_STATUS.get(to_status, ActivityType.STATUS_CHANGED),
            actor=actor,
            description=f"Status changed from {from_status.value} to {to_status.value}. Trigger: {trigger}",
            metadata={
                "from_status": from_status.value,
                "to_status": to_status.value,
                "trigger": trigger,
                **(metadata or {}),
            },
            is_important=to_status in (CaseStatus.RESOLVED, CaseStatus.CLOSED),
        )

        now = utcnow()
        case.status = to_status
        case.updated_at = now
        if to_status == CaseStatus.PANEL_ASSIGNED:
            case.panel_assigned_at = now
        elif to_status == CaseStatus.RESOLVED:
            case.resolved_at = now
        elif to_status == CaseStatus.CLOSED:
            case.closed_at = now

        logger.info(f"Case {case.id}: {from_status.value} -> {to_status.value} ({trigger})")
        return case

    def is_terminal_state(self, status: CaseStatus) -> bool:
        """Check if a status is terminal (no further transitions)."""
        return len(self.get_state_config(status).get("allowed_transitions", [])) == 0

    def get_next_states(self, status: CaseStatus) -> List[CaseStatus]:
        """Get possible next statuses from the current one."""
        return self.get_state_config(status).get("allowed_transitions", [])


# =============================================================================
# AUTOMATIC TRANSITION TRIGGERS
# =============================================================================
#
# Fired by the panel tracker and the resolution aggregator. Each returns True
# only when it moved the case; a case already past the target is left alone.
#
# =============================================================================

class AutomaticTransitionTriggers:
    """Component-driven transitions that need no explicit admin action."""

    @staticmethod
    def panel_attached(state_machine: CaseStateMachine, case: CaseDB, actor: Actor) -> bool:
        """First active panelist on an open or assigned case."""
        if case.status not in (CaseStatus.OPEN, CaseStatus.ASSIGNED):
            return False
        state_machine.transition(case, CaseStatus.PANEL_ASSIGNED, trigger="panel_attached", actor=actor)
        return True

    @staticmethod
    def panelist_activity(state_machine: CaseStateMachine, case: CaseDB, actor: Actor) -> bool:
        """First draft or submission marks panel work underway."""
        if case.status != CaseStatus.PANEL_ASSIGNED:
            return False
        state_machine.transition(case, CaseStatus.IN_PROGRESS, trigger="panelist_activity", actor=actor)
        return True

    @staticmethod
    def resolution_complete(state_machine: CaseStateMachine, case: CaseDB) -> bool:
        """Every active panelist submitted. Fires at most once per case."""
        if case.status != CaseStatus.IN_PROGRESS:
            return False
        if case.resolution_state != ResolutionProgressState.COMPLETE:
            return False
        state_machine.transition(case, CaseStatus.RESOLVED, trigger="resolution_complete", actor=Actor.system())
        return True

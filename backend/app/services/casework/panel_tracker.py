"""
Panel Assignment Tracker

Attaches panelists to a case and removes them again.

Writes are serialized per case: the case row and the affected panelist rows
are locked before the capacity check, and the case version is compared on
flush. Two concurrent batches therefore cannot both pass a capacity check
and overshoot a panelist's maximum load.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ...models.db_models import (
    ActivityType, AssignmentStatus, CaseDB, CaseStatus, PanelAssignmentDB, utcnow,
)
from ..errors import (
    AlreadyAssigned, CapacityExceeded, ConcurrentModification, InvalidTransition,
    MediationError, NotFound, ValidationError,
)
from .activity_log import Actor, CaseActivityLog
from .queries import get_case, get_panelists_for_update
from .resolution_aggregator import ResolutionAggregator
from .serializers import serialize_case
from .state_machine import AutomaticTransitionTriggers, CaseStateMachine

logger = logging.getLogger(__name__)

# Panel changes are frozen once the case has an outcome
_LOCKED_STATUSES = (CaseStatus.RESOLVED, CaseStatus.CLOSED)


@dataclass
class AssignmentOutcome:
    """Per-id result of an assign_panel batch. Partial batches are valid."""
    case: CaseDB
    accepted: List[str] = field(default_factory=list)
    rejected: List[Dict[str, Any]] = field(default_factory=list)

    def reject(self, panelist_id: str, error: MediationError):
        self.rejected.append({"panelist_id": panelist_id, **error.to_dict()})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "case": serialize_case(self.case),
            "accepted": list(self.accepted),
            "rejected": list(self.rejected),
        }


class PanelAssignmentTracker:
    """Maintains active/removed panel assignments on a case."""

    def __init__(self, db: Session):
        self.db = db
        self.state_machine = CaseStateMachine(db)
        self.activity_log = CaseActivityLog(db)
        self.aggregator = ResolutionAggregator(db)

    def assign_panel(self, case_id: str, panelist_ids: List[str], actor: Actor) -> AssignmentOutcome:
        """
        Attach panelists to a case.

        Each id is accepted or rejected on its own:
        - AlreadyAssigned: already active on this case
        - NotFound: unknown or inactive panelist
        - CapacityExceeded: current case load has reached max_cases
        The first active panelist moves an open/assigned case to panel_assigned.
        """
        if not panelist_ids:
            raise ValidationError(
                "Please provide at least one panelist ID",
                errors=[{"field": "panelist_ids", "message": "must not be empty"}],
                field="panelist_ids",
            )
        requested = list(dict.fromkeys(panelist_ids))

        case = get_case(self.db, case_id, for_update=True)
        if case.status in _LOCKED_STATUSES:
            raise InvalidTransition(
                f"Cannot change the panel of a {case.status.value} case",
                from_status=case.status.value,
                ref=case_id,
            )

        panelists = {p.id: p for p in get_panelists_for_update(self.db, requested)}
        active_ids = {a.panelist_id for a in case.active_assignments}
        outcome = AssignmentOutcome(case=case)

        for panelist_id in requested:
            panelist = panelists.get(panelist_id)

            if panelist_id in active_ids:
                outcome.reject(panelist_id, AlreadyAssigned(
                    "Panelist is already assigned to this case", ref=panelist_id
                ))
                continue
            if panelist is None or not panelist.is_active:
                outcome.reject(panelist_id, NotFound(
                    "Panelist not found or inactive", ref=panelist_id
                ))
                continue
            if not panelist.has_capacity:
                outcome.reject(panelist_id, CapacityExceeded(
                    f"{panelist.name} is at capacity",
                    current_load=panelist.current_case_load,
                    max_cases=panelist.max_cases,
                    ref=panelist_id,
                ))
                continue

            case.assigned_panelists.append(PanelAssignmentDB(
                id=str(uuid4()),
                panelist_id=panelist_id,
                status=AssignmentStatus.ACTIVE,
                assigned_by=actor.actor_id,
                assigned_at=utcnow(),
            ))
            panelist.current_case_load += 1
            outcome.accepted.append(panelist_id)

            self.activity_log.record(
                case_id=case_id,
                activity_type=ActivityType.PANELIST_ADDED,
                actor=actor,
                description=f"{panelist.name} added to the panel",
                metadata={"panelist_id": panelist_id},
            )

        if outcome.rejected:
            logger.warning(f"Case {case_id}: rejected panelists {[r['panelist_id'] for r in outcome.rejected]}")

        if not outcome.accepted:
            self.db.rollback()
            outcome.case = get_case(self.db, case_id)
            return outcome

        self.activity_log.record(
            case_id=case_id,
            activity_type=ActivityType.PANEL_ASSIGNED,
            actor=actor,
            description=f"{len(outcome.accepted)} panelist(s) assigned to case",
            metadata={"panelist_ids": outcome.accepted},
            is_important=True,
        )
        case.updated_at = utcnow()

        AutomaticTransitionTriggers.panel_attached(self.state_machine, case, actor)
        # New panelists widen the progress denominator
        self.aggregator.recompute(case)

        self._commit()
        logger.info(f"Case {case_id}: assigned panelists {outcome.accepted}")
        return outcome

    def remove_panelist(self, case_id: str, panelist_id: str, actor: Actor) -> CaseDB:
        """
        Mark a panelist's active assignment as removed.

        Their resolution, if any, is kept but leaves the progress
        denominator. Removal can complete progress and resolve the case.
        """
        case = get_case(self.db, case_id, for_update=True)
        if case.is_closed:
            raise InvalidTransition(
                "Cannot change the panel of a closed case",
                from_status=case.status.value,
                ref=case_id,
            )

        assignment = next(
            (a for a in case.active_assignments if a.panelist_id == panelist_id),
            None,
        )
        if assignment is None:
            raise NotFound(
                "Panelist not assigned to this case or already removed",
                ref=panelist_id,
            )

        now = utcnow()
        assignment.status = AssignmentStatus.REMOVED
        assignment.removed_at = now
        assignment.removed_by = actor.actor_id

        for panelist in get_panelists_for_update(self.db, [panelist_id]):
            if panelist.current_case_load > 0:
                panelist.current_case_load -= 1

        self.activity_log.record(
            case_id=case_id,
            activity_type=ActivityType.PANELIST_REMOVED,
            actor=actor,
            description="Panelist removed from the panel",
            metadata={"panelist_id": panelist_id},
        )
        case.updated_at = now

        self.aggregator.recompute(case)
        self._commit()

        logger.info(f"Case {case_id}: removed panelist {panelist_id}")
        return case

    def _commit(self):
        try:
            self.db.commit()
        except (StaleDataError, IntegrityError):
            self.db.rollback()
            raise ConcurrentModification("Panel was modified concurrently; retry the request")

"""
Tests for the panel assignment tracker.

Key tests:
1. First active panelist moves the case to panel_assigned
2. Per-id rejections: already_assigned, not_found, capacity_exceeded
3. Case load bookkeeping on assign and remove
4. Removal excludes a panelist from progress and can resolve the case
"""
import pytest

from app.models.db_models import (
    ActivityType, AssignmentStatus, CaseActivityDB, CaseDB, CaseStatus, PanelistDB,
)
from app.services.casework import CaseAdminService, PanelAssignmentTracker, ResolutionAggregator
from app.services.errors import InvalidTransition, NotFound, ValidationError
from conftest import RESOLUTION_NOTES


@pytest.fixture
def tracker(db):
    return PanelAssignmentTracker(db)


def _case(db, case_id):
    db.expire_all()
    return db.query(CaseDB).filter(CaseDB.id == case_id).one()


def _load(db, panelist_id):
    db.expire_all()
    return db.query(PanelistDB).filter(PanelistDB.id == panelist_id).one().current_case_load


# =============================================================================
# ASSIGN
# =============================================================================

class TestAssignPanel:
    """assign_panel accepts or rejects each id independently."""

    def test_first_panelist_moves_case_to_panel_assigned(self, db, tracker, make_case, make_panelist, admin):
        case_id = make_case()
        panelist = make_panelist()

        outcome = tracker.assign_panel(case_id, [panelist.id], admin)

        assert outcome.accepted == [panelist.id]
        assert outcome.rejected == []
        case = _case(db, case_id)
        assert case.status == CaseStatus.PANEL_ASSIGNED
        assert case.panel_assigned_at is not None
        assert [a.panelist_id for a in case.active_assignments] == [panelist.id]
        assert (case.resolution_submitted, case.resolution_total) == (0, 1)

    def test_assign_increments_case_load(self, db, tracker, make_case, make_panelist, admin):
        case_id = make_case()
        panelist = make_panelist(current_case_load=2)

        tracker.assign_panel(case_id, [panelist.id], admin)

        assert _load(db, panelist.id) == 3

    def test_panelist_at_capacity_rejected(self, db, tracker, make_case, make_panelist, admin):
        """p1 at capacity → capacity_exceeded, no active assignment for p1."""
        case_id = make_case()
        full = make_panelist(max_cases=2, current_case_load=2)

        outcome = tracker.assign_panel(case_id, [full.id], admin)

        assert outcome.accepted == []
        assert outcome.rejected[0]["panelist_id"] == full.id
        assert outcome.rejected[0]["error"] == "capacity_exceeded"
        assert outcome.rejected[0]["current_load"] == 2
        assert outcome.rejected[0]["max_cases"] == 2
        case = _case(db, case_id)
        assert case.active_assignments == []
        assert case.status == CaseStatus.OPEN
        assert _load(db, full.id) == 2

    def test_duplicate_assignment_rejected(self, db, tracker, make_case, make_panelist, admin):
        case_id = make_case()
        panelist = make_panelist()
        tracker.assign_panel(case_id, [panelist.id], admin)

        outcome = tracker.assign_panel(case_id, [panelist.id], admin)

        assert outcome.rejected[0]["error"] == "already_assigned"
        assert len(_case(db, case_id).active_assignments) == 1
        assert _load(db, panelist.id) == 1

    def test_repeated_id_in_one_batch_assigned_once(self, db, tracker, make_case, make_panelist, admin):
        case_id = make_case()
        panelist = make_panelist()

        outcome = tracker.assign_panel(case_id, [panelist.id, panelist.id], admin)

        assert outcome.accepted == [panelist.id]
        assert _load(db, panelist.id) == 1

    def test_partial_batch(self, db, tracker, make_case, make_panelist, admin):
        """Valid ids are attached even when others in the batch are rejected."""
        case_id = make_case()
        ok = make_panelist(name="Available")
        full = make_panelist(name="Busy", max_cases=1, current_case_load=1)
        inactive = make_panelist(name="Retired", is_active=False)

        outcome = tracker.assign_panel(case_id, [ok.id, full.id, inactive.id, "ghost"], admin)

        assert outcome.accepted == [ok.id]
        kinds = {r["panelist_id"]: r["error"] for r in outcome.rejected}
        assert kinds == {
            full.id: "capacity_exceeded",
            inactive.id: "not_found",
            "ghost": "not_found",
        }
        assert _case(db, case_id).status == CaseStatus.PANEL_ASSIGNED

    def test_empty_batch_is_validation_error(self, tracker, make_case, admin):
        with pytest.raises(ValidationError):
            tracker.assign_panel(make_case(), [], admin)

    def test_closed_case_rejected(self, tracker, make_case, make_panelist, admin, db):
        case_id = make_case()
        CaseAdminService(db).update_status(case_id, CaseStatus.CLOSED, admin)

        with pytest.raises(InvalidTransition):
            tracker.assign_panel(case_id, [make_panelist().id], admin)

    def test_adding_panelist_to_assigned_case(self, db, tracker, make_case, make_panelist, admin):
        """assigned → panel_assigned on first panelist."""
        case_id = make_case()
        CaseAdminService(db).assign_admin(case_id, "admin-1", admin)

        tracker.assign_panel(case_id, [make_panelist().id], admin)

        assert _case(db, case_id).status == CaseStatus.PANEL_ASSIGNED

    def test_logs_panelist_added_and_panel_assigned(self, db, tracker, make_case, make_panelist, admin):
        case_id = make_case()

        tracker.assign_panel(case_id, [make_panelist().id, make_panelist().id], admin)

        types = [
            a.activity_type
            for a in db.query(CaseActivityDB).filter(CaseActivityDB.case_id == case_id).all()
        ]
        assert types.count(ActivityType.PANELIST_ADDED) == 2
        assert types.count(ActivityType.PANEL_ASSIGNED) == 1


# =============================================================================
# REMOVE
# =============================================================================

class TestRemovePanelist:
    """remove_panelist keeps history and recomputes progress."""

    def test_remove_marks_assignment_and_decrements_load(self, db, tracker, make_panel_case, admin):
        case_id, (p1, p2) = make_panel_case(size=2)

        tracker.remove_panelist(case_id, p1, admin)

        case = _case(db, case_id)
        removed = [a for a in case.assigned_panelists if a.panelist_id == p1][0]
        assert removed.status == AssignmentStatus.REMOVED
        assert removed.removed_at is not None
        assert [a.panelist_id for a in case.active_assignments] == [p2]
        assert _load(db, p1) == 0
        assert case.status == CaseStatus.PANEL_ASSIGNED

    def test_remove_unassigned_panelist_not_found(self, tracker, make_panel_case, admin):
        case_id, _ = make_panel_case(size=1)
        with pytest.raises(NotFound):
            tracker.remove_panelist(case_id, "someone-else", admin)

    def test_remove_twice_not_found(self, tracker, make_panel_case, admin):
        case_id, (p1,) = make_panel_case(size=1)
        tracker.remove_panelist(case_id, p1, admin)

        with pytest.raises(NotFound):
            tracker.remove_panelist(case_id, p1, admin)

    def test_removed_panelist_can_be_reassigned(self, db, tracker, make_panel_case, admin):
        case_id, (p1, _) = make_panel_case(size=2)
        tracker.remove_panelist(case_id, p1, admin)

        outcome = tracker.assign_panel(case_id, [p1], admin)

        assert outcome.accepted == [p1]
        assert len(_case(db, case_id).active_assignments) == 2

    def test_removing_last_outstanding_panelist_resolves_case(self, db, tracker, make_panel_case, admin):
        """Two panelists, one submitted: removing the other completes progress."""
        case_id, (p1, p2) = make_panel_case(size=2)
        ResolutionAggregator(db).submit_resolution(case_id, p1, {
            "resolution_status": "resolved",
            "notes": RESOLUTION_NOTES,
            "outcome": "Joint survey commissioned.",
        })

        tracker.remove_panelist(case_id, p2, admin)

        case = _case(db, case_id)
        assert case.status == CaseStatus.RESOLVED
        assert (case.resolution_submitted, case.resolution_total) == (1, 1)

    def test_closed_case_rejects_removal(self, db, tracker, make_panel_case, admin):
        case_id, (p1,) = make_panel_case(size=1)
        CaseAdminService(db).update_status(case_id, CaseStatus.CLOSED, admin)

        with pytest.raises(InvalidTransition):
            tracker.remove_panelist(case_id, p1, admin)

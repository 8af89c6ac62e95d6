"""Dict renderings of case records for API responses."""
from typing import Any, Dict

from ...models.db_models import CaseDB, CaseNoteDB, PanelAssignmentDB


def _iso(value):
    return value.isoformat() if value else None


def serialize_assignment(assignment: PanelAssignmentDB) -> Dict[str, Any]:
    return {
        "id": assignment.id,
        "panelist_id": assignment.panelist_id,
        "status": assignment.status.value,
        "assigned_by": assignment.assigned_by,
        "assigned_at": _iso(assignment.assigned_at),
        "removed_by": assignment.removed_by,
        "removed_at": _iso(assignment.removed_at),
    }


def serialize_note(note: CaseNoteDB) -> Dict[str, Any]:
    return {
        "id": note.id,
        "content": note.content,
        "created_by": note.created_by,
        "created_at": _iso(note.created_at),
    }


def serialize_case(case: CaseDB) -> Dict[str, Any]:
    return {
        "case_id": case.id,
        "title": case.title,
        "description": case.description,
        "type": case.case_type.value,
        "priority": case.priority.value,
        "status": case.status.value,
        "created_by": case.created_by,
        "assigned_to": case.assigned_to,
        "assigned_at": _iso(case.assigned_at),
        "parties": case.parties,
        "party_a_session_id": case.party_a_session_id,
        "party_b_session_id": case.party_b_session_id,
        "party_a_submission": case.party_a_submission,
        "party_b_submission": case.party_b_submission,
        "has_party_b_response": case.party_b_submission is not None,
        "assigned_panelists": [serialize_assignment(a) for a in case.assigned_panelists],
        "resolution_progress": {
            "submitted": case.resolution_submitted,
            "total": case.resolution_total,
            "state": case.resolution_state.value,
        },
        "notes": [serialize_note(n) for n in case.notes],
        "panel_assigned_at": _iso(case.panel_assigned_at),
        "resolved_at": _iso(case.resolved_at),
        "closed_at": _iso(case.closed_at),
        "created_at": _iso(case.created_at),
        "updated_at": _iso(case.updated_at),
    }

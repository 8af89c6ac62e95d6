"""
API route tests.

Runs the FastAPI app against the test database through dependency_overrides
and checks status codes and the structured error body.
"""
import pytest
from fastapi.testclient import TestClient

from app.auth import create_access_token
from app.database import get_db
from app.main import app
from conftest import RESOLUTION_NOTES, step_payload


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def bearer(user_id, role="client", panelist_id=None):
    return {"Authorization": f"Bearer {create_access_token(user_id, role=role, panelist_id=panelist_id)}"}


ADMIN = bearer("admin-1", role="admin")


def _complete_intake(client, headers=None):
    session_id = client.post("/intake/sessions", json={}, headers=headers or {}).json()["session_id"]
    for step_id in range(1, 7):
        response = client.post(f"/intake/sessions/{session_id}/steps/{step_id}", json=step_payload(step_id))
        assert response.status_code == 200
    return session_id


# =============================================================================
# HEALTH
# =============================================================================

class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


# =============================================================================
# INTAKE
# =============================================================================

class TestIntakeRoutes:
    """Intake wizard endpoints."""

    def test_step_flow_and_reopen(self, client):
        created = client.post("/intake/sessions", json={"user_id": "client-1"})
        assert created.status_code == 201
        session_id = created.json()["session_id"]

        step = client.post(f"/intake/sessions/{session_id}/steps/1", json=step_payload(1))
        assert step.json()["next_step"] == 2

        reopened = client.get(f"/intake/sessions/{session_id}").json()
        assert reopened["current_step"] == 2
        assert reopened["completed_steps"] == [1]
        assert "case_overview" in reopened["draft"]

    def test_invalid_step_returns_field_errors(self, client):
        session_id = client.post("/intake/sessions").json()["session_id"]

        response = client.post(
            f"/intake/sessions/{session_id}/steps/3", json=step_payload(3, timeline="")
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "validation_error"
        assert {"timeline"} <= {e["field"] for e in detail["validation_errors"]}

    def test_last_step_returns_final_submission(self, client):
        session_id = client.post("/intake/sessions").json()["session_id"]
        for step_id in range(1, 6):
            client.post(f"/intake/sessions/{session_id}/steps/{step_id}", json=step_payload(step_id))

        response = client.post(f"/intake/sessions/{session_id}/steps/6", json=step_payload(6))

        assert response.json()["next_step"] == "final_submission"

    def test_incomplete_submit_reports_missing_step(self, client):
        session_id = client.post("/intake/sessions").json()["session_id"]
        client.post(f"/intake/sessions/{session_id}/steps/1", json=step_payload(1))

        response = client.post(f"/intake/sessions/{session_id}/submit")

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "incomplete_submission"
        assert response.json()["detail"]["missing_step"] == 2

    def test_submit_is_idempotent(self, client):
        session_id = _complete_intake(client)

        first = client.post(f"/intake/sessions/{session_id}/submit").json()
        second = client.post(f"/intake/sessions/{session_id}/submit").json()

        assert first["case_id"] == second["case_id"]
        assert first["role"] == "party_a"

    def test_second_join_conflicts(self, client):
        parent_id = client.post("/intake/sessions").json()["session_id"]

        joined = client.post("/intake/sessions/join", json={"parent_session_id": parent_id})
        again = client.post("/intake/sessions/join", json={"parent_session_id": parent_id})

        assert joined.status_code == 201
        assert joined.json()["role"] == "party_b"
        assert again.status_code == 409
        assert again.json()["detail"]["error"] == "already_joined"

    def test_unknown_session_404(self, client):
        response = client.get("/intake/sessions/missing")
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "not_found"


# =============================================================================
# CASE LIFECYCLE
# =============================================================================

class TestCaseLifecycleRoutes:
    """Admin, panel and resolution endpoints end to end."""

    def test_full_lifecycle(self, client, make_panelist):
        session_id = _complete_intake(client, headers=bearer("client-1"))
        case_id = client.post(
            f"/intake/sessions/{session_id}/submit", headers=bearer("client-1")
        ).json()["case_id"]

        case = client.get(f"/cases/{case_id}", headers=bearer("client-1")).json()
        assert case["status"] == "open"
        assert case["type"] == "land"

        p1, p2 = make_panelist(name="First"), make_panelist(name="Second")
        panel = client.post(f"/cases/{case_id}/panel", json={"panelist_ids": [p1.id, p2.id]}, headers=ADMIN)
        assert panel.status_code == 200
        assert panel.json()["case"]["status"] == "panel_assigned"
        assert sorted(panel.json()["accepted"]) == sorted([p1.id, p2.id])

        draft = client.put(
            f"/cases/{case_id}/resolution/draft",
            json={"notes": "Working notes"},
            headers=bearer("user-p1", role="panelist", panelist_id=p1.id),
        )
        assert draft.status_code == 200

        first = client.post(
            f"/cases/{case_id}/resolution/submit",
            json={"resolution_status": "resolved", "notes": RESOLUTION_NOTES, "outcome": "Joint survey."},
            headers=bearer("user-p1", role="panelist", panelist_id=p1.id),
        ).json()
        assert first["resolution_complete"] is False

        second = client.post(
            f"/cases/{case_id}/resolution/submit",
            json={"resolution_status": "no_outcome", "notes": RESOLUTION_NOTES},
            headers=bearer("user-p2", role="panelist", panelist_id=p2.id),
        ).json()
        assert second["resolution_complete"] is True

        status = client.get(f"/cases/{case_id}/resolution/status", headers=ADMIN).json()
        assert status["case_status"] == "resolved"
        assert status["progress"] == {"submitted": 2, "total": 2, "pending": 0, "complete": True}

        closed = client.patch(f"/cases/{case_id}/status", json={"status": "closed"}, headers=ADMIN)
        assert closed.json()["status"] == "closed"

        note = client.post(f"/cases/{case_id}/notes", json={"content": "Filed."}, headers=ADMIN)
        assert note.status_code == 201

        timeline = client.get(f"/cases/{case_id}/timeline", headers=ADMIN).json()
        assert timeline["activities"][0]["type"] == "note_added"

    def test_duplicate_submission_conflicts(self, client, make_panel_case):
        case_id, (p1, _) = make_panel_case(size=2)
        headers = bearer("user-p1", role="panelist", panelist_id=p1)
        body = {"resolution_status": "no_outcome", "notes": RESOLUTION_NOTES}

        client.post(f"/cases/{case_id}/resolution/submit", json=body, headers=headers)
        again = client.post(f"/cases/{case_id}/resolution/submit", json=body, headers=headers)

        assert again.status_code == 409
        assert again.json()["detail"]["error"] == "already_submitted"

    def test_capacity_rejection_reported_per_id(self, client, make_case, make_panelist):
        case_id = make_case()
        full = make_panelist(max_cases=1, current_case_load=1)

        response = client.post(f"/cases/{case_id}/panel", json={"panelist_ids": [full.id]}, headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["accepted"] == []
        assert response.json()["rejected"][0]["error"] == "capacity_exceeded"
        assert response.json()["case"]["status"] == "open"

    def test_assign_and_unassign_admin(self, client, make_case):
        case_id = make_case()

        assigned = client.patch(f"/cases/{case_id}/assign", json={"admin_id": "admin-9"}, headers=ADMIN)
        unassigned = client.patch(f"/cases/{case_id}/unassign", headers=ADMIN)

        assert assigned.json()["status"] == "assigned"
        assert assigned.json()["assigned_to"] == "admin-9"
        assert unassigned.json()["status"] == "assigned"
        assert unassigned.json()["assigned_to"] is None

    def test_invalid_transition_conflicts(self, client, make_case):
        case_id = make_case()

        response = client.patch(f"/cases/{case_id}/status", json={"status": "resolved"}, headers=ADMIN)

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "invalid_transition"
        assert response.json()["detail"]["from_status"] == "open"

    def test_short_notes_return_structured_error(self, client, make_panel_case):
        case_id, (p1, _) = make_panel_case(size=2)

        response = client.post(
            f"/cases/{case_id}/resolution/submit",
            json={"resolution_status": "no_outcome", "notes": "Too short."},
            headers=bearer("user-p1", role="panelist", panelist_id=p1),
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "validation_error"
        assert [e["field"] for e in detail["validation_errors"]] == ["notes"]

    def test_invalid_draft_returns_structured_error(self, client, make_panel_case):
        case_id, (p1, _) = make_panel_case(size=2)

        response = client.put(
            f"/cases/{case_id}/resolution/draft",
            json={"resolution_status": "maybe"},
            headers=bearer("user-p1", role="panelist", panelist_id=p1),
        )

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "validation_error"

    def test_remove_panelist(self, client, make_panel_case):
        case_id, (p1, p2) = make_panel_case(size=2)

        response = client.delete(f"/cases/{case_id}/panel/{p1}", headers=ADMIN)

        assert response.status_code == 200
        active = [a for a in response.json()["assigned_panelists"] if a["status"] == "active"]
        assert [a["panelist_id"] for a in active] == [p2]


# =============================================================================
# AUTHORIZATION
# =============================================================================

class TestAuthorization:
    """Role checks on case endpoints."""

    def test_missing_token_rejected(self, client, make_case):
        response = client.get(f"/cases/{make_case()}")
        assert response.status_code in (401, 403)

    def test_invalid_token_rejected(self, client, make_case):
        response = client.get(f"/cases/{make_case()}", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_client_cannot_assign_panel(self, client, make_case, make_panelist):
        response = client.post(
            f"/cases/{make_case()}/panel",
            json={"panelist_ids": [make_panelist().id]},
            headers=bearer("client-1"),
        )
        assert response.status_code == 403

    def test_other_client_cannot_view_case(self, client, make_case):
        case_id = make_case(user_id="client-1")
        assert client.get(f"/cases/{case_id}", headers=bearer("client-1")).status_code == 200
        assert client.get(f"/cases/{case_id}", headers=bearer("client-2")).status_code == 403

    def test_unknown_case_404_for_admin(self, client):
        response = client.get("/cases/CASE-2026-00000000", headers=ADMIN)
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "not_found"

    def test_admin_token_cannot_submit_resolution(self, client, make_panel_case):
        case_id, _ = make_panel_case(size=1)
        response = client.post(
            f"/cases/{case_id}/resolution/submit",
            json={"resolution_status": "no_outcome", "notes": RESOLUTION_NOTES},
            headers=ADMIN,
        )
        assert response.status_code == 403

    def test_unassigned_panelist_cannot_read_resolution_status(self, client, make_panel_case, make_panelist):
        case_id, _ = make_panel_case(size=1)
        outsider = make_panelist(name="Outsider")

        response = client.get(
            f"/cases/{case_id}/resolution/status",
            headers=bearer("user-out", role="panelist", panelist_id=outsider.id),
        )

        assert response.status_code == 403

    def test_panelist_status_hides_other_resolutions(self, client, make_panel_case):
        """Assigned panelists see their own content and only the state of the others."""
        case_id, (p1, p2) = make_panel_case(size=2)
        client.post(
            f"/cases/{case_id}/resolution/submit",
            json={"resolution_status": "resolved", "notes": RESOLUTION_NOTES, "outcome": "Joint survey."},
            headers=bearer("user-p1", role="panelist", panelist_id=p1),
        )
        client.put(
            f"/cases/{case_id}/resolution/draft",
            json={"notes": "My own working notes"},
            headers=bearer("user-p2", role="panelist", panelist_id=p2),
        )

        response = client.get(
            f"/cases/{case_id}/resolution/status",
            headers=bearer("user-p2", role="panelist", panelist_id=p2),
        )

        assert response.status_code == 200
        entries = {r["panelist_id"]: r for r in response.json()["resolutions"]}
        assert entries[p1]["submission_state"] == "submitted"
        assert "notes" not in entries[p1]
        assert "outcome" not in entries[p1]
        assert entries[p2]["notes"] == "My own working notes"

        admin_view = client.get(f"/cases/{case_id}/resolution/status", headers=ADMIN).json()
        assert {r["panelist_id"]: r for r in admin_view["resolutions"]}[p1]["notes"] == RESOLUTION_NOTES

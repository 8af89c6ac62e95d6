"""
Shared fixtures for the mediation engine test suite.

Each test gets a fresh in-memory SQLite database with every table created.
"""
import os

# app.database builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

from copy import deepcopy
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models import db_models  # noqa: F401
from app.models.db_models import PanelistDB
from app.services.casework import Actor, PanelAssignmentTracker
from app.services.intake import CaseFinalizer, IntakeSessionStore, IntakeStepProcessor


# =============================================================================
# STEP PAYLOADS
# =============================================================================

VALID_STEPS = {
    1: {
        "conflict_type": "Land Dispute",
        "description": "The boundary fence was moved two meters onto our plot last spring.",
        "urgency_level": "high",
        "estimated_value": "5000",
    },
    2: {
        "parties": [
            {
                "name": "Asha Patel",
                "role": "Other",
                "email": "asha.patel@mediation.org",
                "phone": "555-0100",
                "relationship": "Other",
            },
            {
                "name": "Ben Okafor",
                "role": "Other",
                "email": "ben.okafor@mediation.org",
                "relationship": "Other",
            },
        ]
    },
    3: {
        "timeline": "The fence was rebuilt in March after a storm knocked it down.",
        "key_issues": ["Fence placement", "Survey accuracy"],
        "previous_attempts": "Spoke with the neighbor twice without agreement.",
        "emotional_impact": "Ongoing tension between the two households.",
    },
    4: {
        "primary_goals": ["Agree on the boundary line"],
        "success_metrics": "A signed boundary agreement",
        "constraints": "Must be settled before the house sale",
        "timeline": "Within three months",
    },
    5: {
        "availability": ["weekday evenings"],
        "preferred_location": "online",
        "time_zone": "UTC",
        "communication_preference": "email",
    },
    6: {"uploaded_files": []},
}

RESOLUTION_NOTES = (
    "Both parties agreed to commission a joint survey and to split the cost evenly."
)


def step_payload(step_id, **overrides):
    """Valid payload for a step, with optional field overrides."""
    payload = deepcopy(VALID_STEPS[step_id])
    payload.update(overrides)
    return payload


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def engine():
    """In-memory SQLite engine shared across threads (TestClient runs in a worker)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    """Session configured like the application's SessionLocal."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_panelist(db):
    """Create a panelist with capacity settings."""
    def _make(name="Panelist", max_cases=5, current_case_load=0, is_active=True):
        panelist = PanelistDB(
            id=str(uuid4()),
            name=name,
            email=f"{uuid4().hex[:8]}@panel.org",
            is_active=is_active,
            max_cases=max_cases,
            current_case_load=current_case_load,
        )
        db.add(panelist)
        db.commit()
        return panelist
    return _make


@pytest.fixture
def completed_session(db):
    """Create a Party A session (or join one as Party B) and complete all six steps."""
    def _make(user_id="client-1", parent_session_id=None):
        store = IntakeSessionStore(db)
        if parent_session_id:
            session = store.join_case(parent_session_id, user_id=user_id)
        else:
            session = store.create_session(user_id=user_id)

        processor = IntakeStepProcessor(db)
        for step_id in range(1, 7):
            processor.submit_step(session.id, step_id, step_payload(step_id))
        return session.id
    return _make


@pytest.fixture
def make_case(db, completed_session):
    """Finalize a fresh Party A session and return the case id."""
    def _make(user_id="client-1"):
        session_id = completed_session(user_id=user_id)
        return CaseFinalizer(db).finalize(session_id)["case_id"]
    return _make


@pytest.fixture
def admin():
    return Actor.admin("admin-1")


@pytest.fixture
def make_panel_case(db, make_case, make_panelist, admin):
    """Case with N active panelists. Returns (case_id, [panelist_id, ...])."""
    def _make(size=2):
        case_id = make_case()
        panelist_ids = [make_panelist(name=f"Panelist {i}").id for i in range(size)]
        PanelAssignmentTracker(db).assign_panel(case_id, panelist_ids, admin)
        return case_id, panelist_ids
    return _make

"""
Mediation Engine - SQLAlchemy ORM Models
PostgreSQL database models for persistent storage
"""
from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, DateTime, Text, JSON, ForeignKey, Boolean,
    Index, UniqueConstraint, Enum as SQLEnum, text,
)
from sqlalchemy.orm import relationship
from ..database import Base


def utcnow() -> datetime:
    """Timezone-aware UTC now, used for every timestamp column."""
    return datetime.now(timezone.utc)


def _enum(enum_cls):
    # Persist enum values ("party_a"), not member names ("PARTY_A")
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


# =============================================================================
# ENUMS FOR INTAKE / CASE LIFECYCLE
# =============================================================================

class PartyRole(str, Enum):
    """Which disputant a session belongs to."""
    PARTY_A = "party_a"
    PARTY_B = "party_b"


class SessionStatus(str, Enum):
    """Intake session status. Archived sessions are read-only."""
    DRAFT = "draft"
    ARCHIVED = "archived"


class CaseStatus(str, Enum):
    """States in the case lifecycle state machine."""
    OPEN = "open"
    ASSIGNED = "assigned"
    PANEL_ASSIGNED = "panel_assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class CaseType(str, Enum):
    MARRIAGE = "marriage"
    LAND = "land"
    PROPERTY = "property"
    FAMILY = "family"


class CasePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class AssignmentStatus(str, Enum):
    """Panel assignment status. Removal never deletes the row."""
    ACTIVE = "active"
    REMOVED = "removed"


class SubmissionState(str, Enum):
    """Lifecycle of one panelist's resolution record."""
    DRAFT = "draft"
    SUBMITTED = "submitted"


class ResolutionStatus(str, Enum):
    """A panelist's view of whether the dispute was resolved."""
    RESOLVED = "resolved"
    NO_OUTCOME = "no_outcome"


class ResolutionProgressState(str, Enum):
    """Case-level rollup of panelist submissions."""
    NOT_STARTED = "not_started"
    PARTIAL = "partial"
    COMPLETE = "complete"


class ActorType(str, Enum):
    """Actor types for the case timeline."""
    ADMIN = "admin"
    PANELIST = "panelist"
    CLIENT = "client"
    SYSTEM = "system"


class ActivityType(str, Enum):
    """Timeline entry types."""
    CASE_CREATED = "case_created"
    CASE_ASSIGNED = "case_assigned"
    CASE_UNASSIGNED = "case_unassigned"
    PANEL_ASSIGNED = "panel_assigned"
    PANELIST_ADDED = "panelist_added"
    PANELIST_REMOVED = "panelist_removed"
    STATUS_CHANGED = "status_changed"
    NOTE_ADDED = "note_added"
    RESOLUTION_SAVED = "resolution_saved"
    RESOLUTION_SUBMITTED = "resolution_submitted"
    CASE_RESOLVED = "case_resolved"
    CASE_CLOSED = "case_closed"
    PARTY_JOINED = "party_joined"


# =============================================================================
# INTAKE MODELS
# =============================================================================

class IntakeSessionDB(Base):
    """
    Resumable intake draft for one submitting party.

    Step payloads live in `draft`, keyed by step name. A Party B session
    points at the Party A session it joined through `parent_session_id`;
    the UNIQUE constraint on that column admits one Party B per parent.
    """
    __tablename__ = "intake_sessions"

    id = Column(String(36), primary_key=True)  # UUID
    parent_session_id = Column(
        String(36), ForeignKey("intake_sessions.id"), nullable=True, unique=True
    )
    linked_session_id = Column(String(36), nullable=True)  # Party A -> its Party B
    role = Column(_enum(PartyRole), nullable=False, default=PartyRole.PARTY_A)
    user_id = Column(String(36), nullable=True, index=True)
    status = Column(_enum(SessionStatus), nullable=False, default=SessionStatus.DRAFT)

    current_step = Column(Integer, nullable=False, default=1)
    completed_steps = Column(JSON, nullable=False, default=list)
    draft = Column(JSON, nullable=False, default=dict)

    # Session -> case mapping; set once by the finalizer
    case_id = Column(String(32), ForeignKey("cases.id"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    last_modified = Column(DateTime(timezone=True), default=utcnow)
    submitted_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_archived(self) -> bool:
        return self.status == SessionStatus.ARCHIVED


# =============================================================================
# CASE MODELS
# =============================================================================

class CaseDB(Base):
    """
    Durable dispute record created by the finalizer.
    Never deleted; only transitioned to a terminal status.
    """
    __tablename__ = "cases"

    id = Column(String(32), primary_key=True)  # CASE-<year>-<hex>
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    case_type = Column(_enum(CaseType), nullable=False, default=CaseType.FAMILY)
    priority = Column(_enum(CasePriority), nullable=False, default=CasePriority.MEDIUM)

    created_by = Column(String(36), nullable=True)
    assigned_to = Column(String(36), nullable=True, index=True)  # Owning admin
    assigned_at = Column(DateTime(timezone=True), nullable=True)

    status = Column(_enum(CaseStatus), nullable=False, default=CaseStatus.OPEN, index=True)

    # Ordered list of {"name", "contact", "role"}
    parties = Column(JSON, nullable=False, default=list)

    party_a_session_id = Column(String(36), nullable=False, unique=True)
    party_b_session_id = Column(String(36), nullable=True, unique=True)
    party_a_submission = Column(JSON, nullable=False)
    party_b_submission = Column(JSON, nullable=True)

    # Resolution progress rollup, refreshed by the aggregator
    resolution_total = Column(Integer, nullable=False, default=0)
    resolution_submitted = Column(Integer, nullable=False, default=0)
    resolution_state = Column(
        _enum(ResolutionProgressState),
        nullable=False,
        default=ResolutionProgressState.NOT_STARTED,
    )

    panel_assigned_at = Column(DateTime(timezone=True), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency: every UPDATE is `WHERE version = :expected`
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    assigned_panelists = relationship(
        "PanelAssignmentDB",
        back_populates="case",
        order_by="PanelAssignmentDB.assigned_at",
        cascade="all, delete-orphan",
    )
    resolutions = relationship("CaseResolutionDB", back_populates="case", cascade="all, delete-orphan")
    notes = relationship(
        "CaseNoteDB", back_populates="case", order_by="CaseNoteDB.created_at", cascade="all, delete-orphan"
    )
    status_log = relationship(
        "CaseStatusLogDB", back_populates="case", order_by="CaseStatusLogDB.created_at", cascade="all, delete-orphan"
    )
    activities = relationship("CaseActivityDB", back_populates="case", cascade="all, delete-orphan")

    @property
    def active_assignments(self):
        return [a for a in self.assigned_panelists if a.status == AssignmentStatus.ACTIVE]

    @property
    def is_closed(self) -> bool:
        return self.status == CaseStatus.CLOSED


class PanelistDB(Base):
    """
    Panelist capacity record.
    Profile CRUD lives elsewhere; the tracker only reads capacity and adjusts load.
    """
    __tablename__ = "panelists"

    id = Column(String(36), primary_key=True)  # UUID
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    max_cases = Column(Integer, nullable=False, default=5)
    current_case_load = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def has_capacity(self) -> bool:
        return self.current_case_load < self.max_cases


class PanelAssignmentDB(Base):
    """
    Panelist attached to a case.
    At most one ACTIVE row per (case, panelist); removed rows are kept for audit.
    """
    __tablename__ = "panel_assignments"

    id = Column(String(36), primary_key=True)  # UUID
    case_id = Column(String(32), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    panelist_id = Column(String(36), ForeignKey("panelists.id"), nullable=False, index=True)

    status = Column(_enum(AssignmentStatus), nullable=False, default=AssignmentStatus.ACTIVE)
    assigned_by = Column(String(36), nullable=True)
    assigned_at = Column(DateTime(timezone=True), default=utcnow)
    removed_by = Column(String(36), nullable=True)
    removed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    case = relationship("CaseDB", back_populates="assigned_panelists")
    panelist = relationship("PanelistDB")

    __table_args__ = (
        Index(
            "uq_panel_assignment_active",
            "case_id",
            "panelist_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )


class CaseResolutionDB(Base):
    """
    One panelist's independent, non-binding resolution for a case.
    Created as a draft on first save; submitted exactly once.
    """
    __tablename__ = "case_resolutions"

    id = Column(String(36), primary_key=True)  # UUID
    case_id = Column(String(32), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    panelist_id = Column(String(36), ForeignKey("panelists.id"), nullable=False, index=True)

    submission_state = Column(_enum(SubmissionState), nullable=False, default=SubmissionState.DRAFT, index=True)
    resolution_status = Column(_enum(ResolutionStatus), nullable=True)
    notes = Column(Text, nullable=True)
    outcome = Column(Text, nullable=True)
    recommendations = Column(Text, nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=True)
    last_modified_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    case = relationship("CaseDB", back_populates="resolutions")

    __table_args__ = (
        UniqueConstraint("case_id", "panelist_id", name="uq_case_resolution_panelist"),
    )

    @property
    def is_submitted(self) -> bool:
        return self.submission_state == SubmissionState.SUBMITTED


class CaseNoteDB(Base):
    """Admin note. Append-only; the only write allowed on a closed case."""
    __tablename__ = "case_notes"

    id = Column(String(36), primary_key=True)  # UUID
    case_id = Column(String(32), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    case = relationship("CaseDB", back_populates="notes")


class CaseStatusLogDB(Base):
    """
    Immutable log of state machine transitions.
    Append-only - records every status change.
    """
    __tablename__ = "case_status_log"

    id = Column(String(36), primary_key=True)  # UUID
    case_id = Column(String(32), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)

    # State Transition
    from_status = Column(_enum(CaseStatus), nullable=True)  # NULL for initial state
    to_status = Column(_enum(CaseStatus), nullable=False)

    # Trigger Information
    trigger = Column(String(100), nullable=False)  # What caused the transition
    actor_type = Column(_enum(ActorType), nullable=False)
    actor_id = Column(String(36), nullable=True)

    # Timestamps (immutable)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    case = relationship("CaseDB", back_populates="status_log")


class CaseActivityDB(Base):
    """
    Immutable record of all case events, rendered as the client-facing timeline.
    Everything is timestamped and cannot be modified.
    """
    __tablename__ = "case_activities"

    id = Column(String(36), primary_key=True)  # UUID
    case_id = Column(String(32), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)

    activity_type = Column(_enum(ActivityType), nullable=False, index=True)
    actor_type = Column(_enum(ActorType), nullable=False)
    actor_id = Column(String(36), nullable=True)
    description = Column(Text, nullable=False)

    # Event Metadata (renamed from 'metadata' which is reserved in SQLAlchemy)
    event_metadata = Column(JSON, nullable=True)
    is_important = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    case = relationship("CaseDB", back_populates="activities")

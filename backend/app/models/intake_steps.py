"""
Mediation Engine - Intake Step Payloads

One pydantic model per intake step. The six shapes are fixed; the step id
selects the model, so a draft can never hold an unvalidated payload.
"""
from __future__ import annotations

from enum import Enum
from typing import Annotated, ClassVar, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints


TOTAL_INTAKE_STEPS = 6

ShortItem = Annotated[str, StringConstraints(strip_whitespace=True, min_length=5, max_length=200)]


# =============================================================================
# ENUMS
# =============================================================================

class ConflictType(str, Enum):
    MARITAL_CONFLICT = "Marital Conflict"
    DIVORCE_PROCEEDINGS = "Divorce Proceedings"
    PROPERTY_DIVISION = "Property Division"
    CHILD_CUSTODY = "Child Custody"
    FINANCIAL_DISPUTES = "Financial Disputes"
    COMMUNICATION_ISSUES = "Communication Issues"
    FAMILY_MEDIATION = "Family Mediation"
    LAND_DISPUTE = "Land Dispute"
    OTHER = "Other"


class UrgencyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class PartyRelationRole(str, Enum):
    SPOUSE_PARTNER = "Spouse/Partner"
    CHILD = "Child"
    PARENT = "Parent"
    LEGAL_REPRESENTATIVE = "Legal Representative"
    MEDIATOR = "Mediator"
    COUNSELOR = "Counselor"
    OTHER_FAMILY_MEMBER = "Other Family Member"
    OTHER = "Other"


class Relationship(str, Enum):
    MARRIED_COUPLE = "Married Couple"
    EX_SPOUSES = "Ex-Spouses"
    PARENT_CHILD = "Parent-Child"
    SIBLINGS = "Siblings"
    EXTENDED_FAMILY = "Extended Family"
    LEGAL_ADVISORS = "Legal Advisors"
    PROFESSIONAL_SUPPORT = "Professional Support"
    OTHER = "Other"


# =============================================================================
# STEP PAYLOADS
# =============================================================================

class StepPayload(BaseModel):
    """Base for all step payloads. Unknown keys are rejected."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    step_key: ClassVar[str] = ""


class CaseOverview(StepPayload):
    """Step 1."""
    step_key: ClassVar[str] = "case_overview"

    conflict_type: ConflictType
    description: str = Field(..., min_length=10, max_length=1000)
    urgency_level: UrgencyLevel
    estimated_value: Optional[str] = None


class InvolvedParty(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=100)
    role: PartyRelationRole
    email: EmailStr
    phone: Optional[str] = None
    relationship: Relationship


class PartiesInvolved(StepPayload):
    """Step 2."""
    step_key: ClassVar[str] = "parties_involved"

    parties: List[InvolvedParty] = Field(..., min_length=1)


class ConflictBackground(StepPayload):
    """Step 3."""
    step_key: ClassVar[str] = "conflict_background"

    timeline: str = Field(..., min_length=20, max_length=2000)
    key_issues: List[ShortItem] = Field(..., min_length=1, max_length=10)
    previous_attempts: str = Field(..., min_length=10, max_length=1000)
    emotional_impact: str = Field(..., min_length=10, max_length=1000)


class DesiredOutcomes(StepPayload):
    """Step 4."""
    step_key: ClassVar[str] = "desired_outcomes"

    primary_goals: List[ShortItem] = Field(..., min_length=1, max_length=5)
    success_metrics: str = Field(..., min_length=10, max_length=500)
    constraints: str = Field(..., min_length=10, max_length=500)
    timeline: str = Field(..., min_length=5, max_length=200)


class SchedulingPreferences(StepPayload):
    """Step 5."""
    step_key: ClassVar[str] = "scheduling_preferences"

    availability: List[str] = Field(..., min_length=1)
    preferred_location: Literal["online", "in-person", "hybrid"]
    time_zone: str = Field(..., min_length=1)
    communication_preference: Literal["email", "phone", "text", "app"]


class UploadedFile(BaseModel):
    """Reference to a file already stored through the upload flow."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    file_name: str = Field(..., min_length=1, max_length=255)
    file_size: int = Field(..., ge=0)
    file_type: str = Field(..., min_length=1)
    storage_key: Optional[str] = None
    description: Optional[str] = Field(None, max_length=500)


class Documents(StepPayload):
    """Step 6. File bytes never pass through here, only references."""
    step_key: ClassVar[str] = "documents"

    uploaded_files: List[UploadedFile] = Field(default_factory=list)


STEP_MODELS: Dict[int, Type[StepPayload]] = {
    1: CaseOverview,
    2: PartiesInvolved,
    3: ConflictBackground,
    4: DesiredOutcomes,
    5: SchedulingPreferences,
    6: Documents,
}

STEP_KEYS: Dict[int, str] = {step_id: model.step_key for step_id, model in STEP_MODELS.items()}

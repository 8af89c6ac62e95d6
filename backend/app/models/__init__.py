"""Mediation Engine - Data Models"""
from .intake_steps import (
    # Enums
    ConflictType, UrgencyLevel, PartyRelationRole, Relationship,
    # Step payloads
    StepPayload, CaseOverview, InvolvedParty, PartiesInvolved, ConflictBackground,
    DesiredOutcomes, SchedulingPreferences, UploadedFile, Documents,
    STEP_MODELS, STEP_KEYS, TOTAL_INTAKE_STEPS,
)

__all__ = [
    "ConflictType", "UrgencyLevel", "PartyRelationRole", "Relationship",
    "StepPayload", "CaseOverview", "InvolvedParty", "PartiesInvolved", "ConflictBackground",
    "DesiredOutcomes", "SchedulingPreferences", "UploadedFile", "Documents",
    "STEP_MODELS", "STEP_KEYS", "TOTAL_INTAKE_STEPS",
]

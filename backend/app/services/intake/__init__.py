"""
Intake Services

Resumable six-step intake for Party A and Party B, ending in a case.
"""

from .session_store import IntakeSessionStore, serialize_session
from .step_processor import IntakeStepProcessor, FINAL_SUBMISSION
from .case_finalizer import CaseFinalizer, generate_case_id

__all__ = [
    'IntakeSessionStore',
    'serialize_session',
    'IntakeStepProcessor',
    'FINAL_SUBMISSION',
    'CaseFinalizer',
    'generate_case_id',
]

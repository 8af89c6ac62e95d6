"""
Casework Services

Case lifecycle after intake: status state machine, panel assignment,
resolution aggregation, admin actions and the case timeline.
"""

from .activity_log import Actor, CaseActivityLog
from .state_machine import CaseStateMachine, AutomaticTransitionTriggers, STATE_CONFIG
from .resolution_aggregator import (
    ResolutionAggregator,
    ResolutionDraft,
    ResolutionProgress,
    ResolutionSubmission,
)
from .panel_tracker import PanelAssignmentTracker, AssignmentOutcome
from .case_admin import CaseAdminService
from .serializers import serialize_case

__all__ = [
    'Actor',
    'CaseActivityLog',
    'CaseStateMachine',
    'AutomaticTransitionTriggers',
    'STATE_CONFIG',
    'ResolutionAggregator',
    'ResolutionDraft',
    'ResolutionProgress',
    'ResolutionSubmission',
    'PanelAssignmentTracker',
    'AssignmentOutcome',
    'CaseAdminService',
    'serialize_case',
]

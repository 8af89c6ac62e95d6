"""
Intake Step Processor

Validates one step payload and merges it into the session draft.

A rejected payload writes nothing. An accepted payload replaces that step's
slice of the draft, so steps may be resubmitted in any order, but
completed_steps and current_step only ever grow.
"""
import logging
from typing import Any, Dict, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ...models.db_models import utcnow
from ...models.intake_steps import STEP_MODELS, TOTAL_INTAKE_STEPS, StepPayload
from ..errors import SessionArchived, ValidationError
from .session_store import IntakeSessionStore

logger = logging.getLogger(__name__)

FINAL_SUBMISSION = "final_submission"


class IntakeStepProcessor:
    """Applies step submissions to intake sessions."""

    def __init__(self, db: Session):
        self.db = db
        self.store = IntakeSessionStore(db)

    def validate_step(self, step_id: int, payload: Union[StepPayload, Dict[str, Any]]) -> StepPayload:
        """Resolve the step model and validate the payload against it."""
        model = STEP_MODELS.get(step_id)
        if model is None:
            raise ValidationError(
                f"Unknown step {step_id}; steps run 1 to {TOTAL_INTAKE_STEPS}",
                errors=[{"field": "step_id", "message": "unknown step"}],
                field="step_id",
            )

        if isinstance(payload, model):
            return payload
        if isinstance(payload, StepPayload):
            payload = payload.model_dump()

        try:
            return model.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e, message=f"Step {step_id} data is invalid")

    def submit_step(
        self,
        session_id: str,
        step_id: int,
        payload: Union[StepPayload, Dict[str, Any]],
    ) -> Dict[str, Any]:
        """
        Store one step and advance the session.

        Returns:
            {session_id, step_id, next_step, current_step, completed_steps}
            where next_step is step_id + 1, or "final_submission" after the
            last step.
        """
        session = self.store.get_session(session_id, for_update=True)
        if session.is_archived:
            raise SessionArchived(
                "Session has already been submitted and can no longer be edited",
                from_status=session.status.value,
                ref=session_id,
            )

        step = self.validate_step(step_id, payload)

        # JSON columns are replaced wholesale so the change is always detected
        draft = dict(session.draft or {})
        draft[step.step_key] = step.model_dump(mode="json")
        session.draft = draft
        session.completed_steps = sorted(set(session.completed_steps or []) | {step_id})
        session.current_step = max(session.current_step, min(step_id + 1, TOTAL_INTAKE_STEPS))
        session.last_modified = utcnow()

        self.db.commit()
        logger.info(f"Session {session_id}: step {step_id} saved")

        next_step = FINAL_SUBMISSION if step_id == TOTAL_INTAKE_STEPS else step_id + 1
        return {
            "session_id": session.id,
            "step_id": step_id,
            "next_step": next_step,
            "current_step": session.current_step,
            "completed_steps": list(session.completed_steps),
        }

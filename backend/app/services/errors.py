"""
Mediation Engine - Service Errors

Every failure the case lifecycle can report. Services raise these; routers
translate them to HTTP responses. None is retried inside the services.
"""
from typing import Any, Dict, List, Optional


class MediationError(Exception):
    """Base class. `kind` is the stable, machine-readable error code."""

    kind = "mediation_error"
    http_status = 400

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        ref: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        self.ref = ref
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.kind, "message": self.message}
        if self.field is not None:
            payload["field"] = self.field
        if self.ref is not None:
            payload["ref"] = self.ref
        payload.update(self.details)
        return payload


class ValidationError(MediationError):
    """Bad input. Recoverable: the caller corrects the payload and retries."""

    kind = "validation_error"
    http_status = 422

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None, **kwargs):
        self.errors = errors or []
        super().__init__(message, **kwargs)
        self.details["validation_errors"] = self.errors

    @classmethod
    def from_pydantic(cls, exc, message: str = "Validation failed", **kwargs) -> "ValidationError":
        """Flatten a pydantic ValidationError into [{field, message}]."""
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        return cls(message, errors=errors, **kwargs)


class NotFound(MediationError):
    kind = "not_found"
    http_status = 404


class AlreadyJoined(MediationError):
    kind = "already_joined"
    http_status = 409


class AlreadySubmitted(MediationError):
    kind = "already_submitted"
    http_status = 409


class AlreadyAssigned(MediationError):
    kind = "already_assigned"
    http_status = 409


class IncompleteSubmission(MediationError):
    kind = "incomplete_submission"
    http_status = 400

    def __init__(self, message: str, missing_step: int, **kwargs):
        self.missing_step = missing_step
        super().__init__(message, **kwargs)
        self.details["missing_step"] = missing_step


class InvalidTransition(MediationError):
    kind = "invalid_transition"
    http_status = 409

    def __init__(self, message: str, from_status: Optional[str] = None, to_status: Optional[str] = None, **kwargs):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(message, **kwargs)
        if from_status is not None:
            self.details["from_status"] = from_status
        if to_status is not None:
            self.details["to_status"] = to_status


class SessionArchived(InvalidTransition):
    """Writes against an intake session that was already finalized."""

    kind = "session_archived"


class CapacityExceeded(MediationError):
    kind = "capacity_exceeded"
    http_status = 409

    def __init__(self, message: str, current_load: int, max_cases: int, **kwargs):
        self.current_load = current_load
        self.max_cases = max_cases
        super().__init__(message, **kwargs)
        self.details.update({"current_load": current_load, "max_cases": max_cases})


class ConcurrentModification(MediationError):
    """A concurrent writer changed the case first; the caller may retry."""

    kind = "concurrent_modification"
    http_status = 409

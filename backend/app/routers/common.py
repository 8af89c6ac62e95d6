"""Shared router helpers."""
from fastapi import HTTPException

from ..services.errors import MediationError


def http_error(error: MediationError) -> HTTPException:
    """Structured HTTP error for a service failure: {"error": kind, "message", ...}."""
    return HTTPException(status_code=error.http_status, detail=error.to_dict())

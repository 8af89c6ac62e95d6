"""Mediation Engine - API Routers"""
from .intake import router as intake_router
from .cases import router as cases_router
from .panels import router as panels_router
from .resolutions import router as resolutions_router

__all__ = [
    "intake_router",
    "cases_router",
    "panels_router",
    "resolutions_router",
]

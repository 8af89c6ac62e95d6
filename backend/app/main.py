"""
Mediation Engine - FastAPI Application

Main entry point for the mediation case backend.

Architecture:
- Intake: IntakeStepProcessor → IntakeSessionStore → CaseFinalizer
- Casework: CaseStateMachine ← PanelAssignmentTracker / ResolutionAggregator
- Timeline: every lifecycle event lands in CaseActivityLog
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import intake_router, cases_router, panels_router, resolutions_router
from .database import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Mediation Engine",
    description="""
    Mediation Engine - Dispute Intake and Panel Resolution

    Disputes are taken in through a resumable six-step intake, routed to a
    panel of human arbiters, and resolved once every active panelist has
    submitted an independent, non-binding resolution.

    ## Lifecycle
    1. **Intake**: Party A completes six steps; Party B may join and respond
    2. **Case**: open → assigned → panel_assigned → in_progress → resolved → closed
    3. **Panel**: admins attach panelists within each panelist's capacity
    4. **Resolution**: the last outstanding submission resolves the case

    ## Key Principles
    - Rejected writes leave no partial state
    - Status only moves forward; admins may close from any state
    - Every transition is logged immutably
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(intake_router)
app.include_router(cases_router)
app.include_router(panels_router)
app.include_router(resolutions_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Mediation Engine",
        "version": "1.0.0",
        "description": "Dispute intake and panel resolution",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m app.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)

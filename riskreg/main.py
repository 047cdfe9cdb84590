"""Main FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from riskreg.config import configure_logging, load_settings
from riskreg.database import engine, Base
from riskreg.api.routes import router
from riskreg.services.store import ArtifactNotFound
# Import models to register them with SQLAlchemy Base
from riskreg.models.domain import RiskRegister, Risk
from riskreg.models.audit import VersionEntry

settings = load_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

# Create FastAPI app
app = FastAPI(
    title="Risk Register - Approval Workflow",
    description="Versioned two-level approval of the risk register and its risks, with an audit trail.",
    version="0.1.0"
)

# Enable CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # For MVP - restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api", tags=["Risk Register"])


@app.exception_handler(ArtifactNotFound)
def artifact_not_found(request: Request, exc: ArtifactNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "Risk Register"}


logger.info(
    "Workflow policy: final approval forces major=%s, distinct approvers=%s",
    settings.final_approval_forces_major, settings.require_distinct_approvers
)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

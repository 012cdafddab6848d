"""Admin API application entry point."""

from typing import List, Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session

from portal_sync import __version__
from portal_sync.api.checkpoints import router as checkpoints_router
from portal_sync.api.integration_logs import router as integration_logs_router
from portal_sync.database.database import get_db, init_db
from portal_sync.pipelines import list_pipelines

app = FastAPI(
    title="Portal Sync",
    description="Admin API for the SugarCRM to portal incremental sync",
    version=__version__,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(checkpoints_router)
app.include_router(integration_logs_router)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    message: Optional[str] = None


class PipelineResponse(BaseModel):
    task_name: str
    module_name: str
    source_module: str
    mapping_type: str
    endpoint: str
    page_size: int
    require_checkpoint: bool


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    init_db()


@app.get("/api/health", response_model=HealthResponse)
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint.

    Checks database connectivity.
    """
    try:
        db.execute(text("SELECT 1"))
        return HealthResponse(status="healthy", database="connected")
    except Exception as e:
        return HealthResponse(status="unhealthy", database="disconnected", message=str(e))


@app.get("/api/pipelines", response_model=List[PipelineResponse])
async def get_pipelines():
    """List the registered sync pipelines."""
    return [
        PipelineResponse(
            task_name=p.task_name,
            module_name=p.module_name,
            source_module=p.source_module,
            mapping_type=p.mapping_type,
            endpoint=p.endpoint,
            page_size=p.page_size,
            require_checkpoint=p.require_checkpoint,
        )
        for p in list_pipelines()
    ]

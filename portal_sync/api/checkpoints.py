"""Checkpoint API endpoints."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from portal_sync.config import settings
from portal_sync.exceptions import CheckpointExistsError, CheckpointNotFoundError
from portal_sync.models.checkpoint import CheckpointStatus, SyncCheckpoint, SyncDirection
from portal_sync.services.checkpoint_store import CheckpointStore, build_checkpoint_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/checkpoints", tags=["checkpoints"])


class CheckpointCreate(BaseModel):
    """Checkpoint creation request."""

    module_name: str
    integration_name: Optional[str] = None
    direction: SyncDirection = SyncDirection.INBOUND
    endpoint: Optional[str] = None


class CheckpointStatsResponse(BaseModel):
    """Checkpoint statistics response."""

    total: int
    by_status: Dict[str, int]
    by_direction: Dict[str, int]
    last_updated: Optional[str] = None


class ResetResponse(BaseModel):
    reset_count: int


def get_checkpoint_store() -> CheckpointStore:
    """Get checkpoint store for the configured backend."""
    return build_checkpoint_store(settings)


@router.get("", response_model=List[Dict[str, Any]])
async def list_checkpoints(
    status: Optional[CheckpointStatus] = None,
    direction: Optional[SyncDirection] = None,
    store: CheckpointStore = Depends(get_checkpoint_store),
):
    """List checkpoints, optionally filtered by status and direction."""
    return [record.model_dump(mode="json") for record in store.list(status=status, direction=direction)]


@router.get("/stats", response_model=CheckpointStatsResponse)
async def checkpoint_stats(store: CheckpointStore = Depends(get_checkpoint_store)):
    return CheckpointStatsResponse(**store.statistics())


@router.get("/{identifier}")
async def get_checkpoint(identifier: str, store: CheckpointStore = Depends(get_checkpoint_store)):
    """Get one checkpoint by module name or integration name."""
    record = store.get(identifier)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Sync record not found for identifier: {identifier}")
    return record.model_dump(mode="json")


@router.post("", status_code=201)
async def create_checkpoint(request: CheckpointCreate, store: CheckpointStore = Depends(get_checkpoint_store)):
    try:
        record: SyncCheckpoint = store.create(
            module_name=request.module_name,
            integration_name=request.integration_name,
            direction=request.direction,
            endpoint=request.endpoint,
        )
    except CheckpointExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return record.model_dump(mode="json")


@router.post("/reset", response_model=ResetResponse)
async def reset_all_checkpoints(store: CheckpointStore = Depends(get_checkpoint_store)):
    """Reset every checkpoint to pending so the next runs fetch everything."""
    count = store.reset_all()
    logger.info(f"Reset {count} checkpoints via API")
    return ResetResponse(reset_count=count)


@router.post("/{identifier}/reset")
async def reset_checkpoint(identifier: str, store: CheckpointStore = Depends(get_checkpoint_store)):
    try:
        record = store.reset(identifier)
    except CheckpointNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return record.model_dump(mode="json")


@router.delete("/{identifier}", status_code=204)
async def delete_checkpoint(identifier: str, store: CheckpointStore = Depends(get_checkpoint_store)):
    try:
        store.delete(identifier)
    except CheckpointNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

"""Integration log API endpoints."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict

from portal_sync.services.outcome_ledger import OutcomeLedger

router = APIRouter(prefix="/api/integration-logs", tags=["integration-logs"])


class IntegrationLogResponse(BaseModel):
    """Integration log row response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    log_type: str
    module_name: str
    source_id: Optional[str] = None
    destination_id: Optional[str] = None
    http_status: Optional[int] = None
    internal_status: Optional[str] = None
    message: str
    log_date: Optional[datetime] = None


def get_ledger() -> OutcomeLedger:
    return OutcomeLedger()


@router.get("", response_model=List[IntegrationLogResponse])
async def list_integration_logs(
    module_name: Optional[str] = None,
    log_type: Optional[str] = None,
    internal_status: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    ledger: OutcomeLedger = Depends(get_ledger),
):
    """List ledger rows, most recent first."""
    rows = ledger.get_logs(
        module_name=module_name,
        log_type=log_type,
        internal_status=internal_status,
        limit=limit,
        offset=offset,
    )
    return [IntegrationLogResponse.model_validate(row) for row in rows]

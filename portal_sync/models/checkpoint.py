"""Checkpoint document models.

The whole checkpoint state is one document: a list of sync records plus a
metadata block. These models validate it on load and serialize it on save.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from portal_sync.timeutils import ensure_utc, isoformat_z, utc_now

DOCUMENT_VERSION = "1.0.0"
DOCUMENT_DESCRIPTION = "Integration sync tracking for the CRM to portal scheduler"


class SyncDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class CheckpointStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class SyncCheckpoint(BaseModel):
    """Persisted high-water mark for one entity type."""

    model_config = ConfigDict(extra="ignore")

    module_name: str
    integration_name: Optional[str] = None
    direction: SyncDirection = SyncDirection.INBOUND
    endpoint: Optional[str] = None
    status: CheckpointStatus = CheckpointStatus.PENDING
    last_sync_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("status", mode="before")
    @classmethod
    def _legacy_status(cls, value):
        # Older documents recorded "completed" for a successful run
        if value == "completed":
            return CheckpointStatus.SUCCESS
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_metadata(cls, value):
        return value or {}

    @field_validator("last_sync_at", "updated_at")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @field_serializer("last_sync_at", "updated_at")
    def _serialize_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return isoformat_z(value) if value is not None else None

    def matches(self, identifier: str) -> bool:
        """True if identifier is this record's module or integration name."""
        return identifier in (self.module_name, self.integration_name)


class CheckpointDocumentMetadata(BaseModel):
    created_at: datetime = Field(default_factory=utc_now)
    version: str = DOCUMENT_VERSION
    description: str = DOCUMENT_DESCRIPTION

    @field_serializer("created_at")
    def _serialize_created_at(self, value: datetime) -> str:
        return isoformat_z(value)


class CheckpointDocument(BaseModel):
    """The single shared document holding every checkpoint."""

    sync_records: List[SyncCheckpoint] = Field(default_factory=list)
    metadata: CheckpointDocumentMetadata = Field(default_factory=CheckpointDocumentMetadata)

    def find_index(self, *identifiers: Optional[str]) -> int:
        """Index of the first record matching any identifier, or -1."""
        wanted = [i for i in identifiers if i]
        for index, record in enumerate(self.sync_records):
            if any(record.matches(i) for i in wanted):
                return index
        return -1

"""Models package."""

from portal_sync.models.integration_log import IntegrationLog
from portal_sync.models.sync_checkpoint import SyncCheckpointRecord
from portal_sync.models.checkpoint import (
    CheckpointDocument,
    CheckpointStatus,
    SyncCheckpoint,
    SyncDirection,
)
from portal_sync.models.field_mapping import FieldMapping

__all__ = [
    "IntegrationLog",
    "SyncCheckpointRecord",
    "CheckpointDocument",
    "CheckpointStatus",
    "SyncCheckpoint",
    "SyncDirection",
    "FieldMapping",
]

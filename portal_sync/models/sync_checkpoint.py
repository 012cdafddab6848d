"""Sync checkpoint database model, used by the SQL checkpoint backend."""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, CheckConstraint
from portal_sync.database.database import Base


class SyncCheckpointRecord(Base):
    """Row form of a SyncCheckpoint."""

    __tablename__ = "sync_checkpoints"

    id = Column(Integer, primary_key=True, index=True)
    module_name = Column(String, nullable=False, unique=True)
    integration_name = Column(String, nullable=True)
    direction = Column(String, nullable=False, default="inbound")
    endpoint = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    # "metadata" is reserved on declarative classes
    metadata_json = Column("metadata", Text, nullable=True)

    # Constraints
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'success', 'failed')", name='ck_checkpoint_status'),
        CheckConstraint("direction IN ('inbound', 'outbound')", name='ck_checkpoint_direction'),
    )

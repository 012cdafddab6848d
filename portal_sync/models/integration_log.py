"""Integration log (outcome ledger) database model."""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text
from portal_sync.database.database import Base


class IntegrationLog(Base):
    """One row per synced record or per sync attempt."""

    __tablename__ = "integration_logs"

    id = Column(Integer, primary_key=True, index=True)
    log_type = Column(String, nullable=False)  # Info, Warning, Error
    module_name = Column(String, nullable=False, index=True)
    source_id = Column(String(36), nullable=True)
    destination_id = Column(String(36), nullable=True)
    http_status = Column(Integer, nullable=True)
    internal_status = Column(String, nullable=True)  # Success, Failed, Pending, Partial Success, ...
    message = Column(Text, nullable=False)
    log_date = Column(DateTime, default=datetime.utcnow, index=True)

"""Outcome ledger backed by the ``integration_logs`` table.

Writes never raise: a failed insert is logged and reported back as a
LedgerWriteResult so that ledger trouble cannot abort a sync.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from portal_sync.models.integration_log import IntegrationLog

logger = logging.getLogger(__name__)

UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

# Log types
INFO = "Info"
WARNING = "Warning"
ERROR = "Error"


def normalize_uuid(value: Any) -> Optional[str]:
    """Return value if it is a UUID string, otherwise None."""
    if not value or not isinstance(value, str):
        return None
    return value if UUID_PATTERN.match(value) else None


@dataclass
class LedgerEntry:
    log_type: str
    module_name: str
    message: str
    source_id: Optional[str] = None
    destination_id: Optional[str] = None
    http_status: Optional[int] = None
    internal_status: Optional[str] = None


@dataclass
class LedgerWriteResult:
    success: bool
    id: Optional[int] = None
    log_date: Optional[datetime] = None
    error: Optional[str] = None


class OutcomeLedger:
    """Records per-record and per-sync outcomes."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        """Initialize ledger.

        Args:
            session_factory: Session factory (defaults to ``SessionLocal``).
        """
        if session_factory is None:
            from portal_sync.database.database import SessionLocal

            session_factory = SessionLocal
        self.session_factory = session_factory

    def record(self, entry: LedgerEntry) -> LedgerWriteResult:
        """Insert one ledger row.

        Args:
            entry: Row to write. Non-UUID identifiers are stored as null.

        Returns:
            LedgerWriteResult describing the outcome.
        """
        if not entry.log_type or not entry.module_name or not entry.message:
            error = "Missing required fields: log_type, module_name, and message are required"
            logger.error(f"Integration log error: {error}")
            return LedgerWriteResult(success=False, error=error)

        db: Session = self.session_factory()
        try:
            row = IntegrationLog(
                log_type=entry.log_type,
                module_name=entry.module_name,
                source_id=normalize_uuid(entry.source_id),
                destination_id=normalize_uuid(entry.destination_id),
                http_status=entry.http_status,
                internal_status=entry.internal_status,
                message=entry.message,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.debug(f"Integration log saved: ID {row.id} - {entry.log_type} - {entry.module_name}")
            return LedgerWriteResult(success=True, id=row.id, log_date=row.log_date)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to save integration log: {e}")
            return LedgerWriteResult(success=False, error=str(e))
        finally:
            db.close()

    def record_push_results(self, module_name: str, results: Iterable[Any]) -> List[LedgerWriteResult]:
        """Write one row per portal push result.

        Validation errors reported by the portal are appended to the message.

        Args:
            module_name: Fallback module name when a result carries none.
            results: PushResult objects.
        """
        written = []
        for result in results:
            message = result.message or ""
            if result.validation_errors:
                message = f"{message} | Validation Errors: {json.dumps(result.validation_errors)}"
            written.append(
                self.record(
                    LedgerEntry(
                        log_type=result.log_type or INFO,
                        module_name=result.module_name or module_name,
                        source_id=result.source_id,
                        destination_id=result.destination_id,
                        http_status=result.http_status,
                        internal_status=result.internal_status,
                        message=message or "(no message)",
                    )
                )
            )
        return written

    def record_error(self, module_name: str, message: str, http_status: Optional[int] = None) -> LedgerWriteResult:
        return self.record(
            LedgerEntry(
                log_type=ERROR,
                module_name=module_name,
                http_status=http_status,
                internal_status="Failed",
                message=message,
            )
        )

    def record_sync_operation(
        self,
        module_name: str,
        operation: str,
        records_processed: int = 0,
        created: int = 0,
        updated: int = 0,
        skipped: int = 0,
        errors: int = 0,
        error: Optional[str] = None,
    ) -> LedgerWriteResult:
        """Write a sync-level row for ``start``, ``complete`` or ``failed``.

        A completed sync with errors is recorded as ``Partial Success``.
        """
        internal_status = "Pending"
        if operation == "start":
            message = f"Sync operation started for {module_name}"
        elif operation == "complete":
            message = (
                f"Sync operation completed for {module_name}. Processed: {records_processed}, "
                f"Created: {created}, Updated: {updated}, Skipped: {skipped}, Errors: {errors}"
            )
            internal_status = "Partial Success" if errors > 0 else "Success"
        elif operation == "failed":
            message = f"Sync operation failed for {module_name}: {error or 'Unknown error'}"
            internal_status = "Failed"
        else:
            message = f"Sync operation {operation} for {module_name}"

        return self.record(
            LedgerEntry(
                log_type=ERROR if operation == "failed" else INFO,
                module_name=module_name,
                internal_status=internal_status,
                message=message,
            )
        )

    def get_logs(
        self,
        module_name: Optional[str] = None,
        log_type: Optional[str] = None,
        internal_status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[IntegrationLog]:
        """Get ledger rows, most recent first.

        Args:
            module_name: Filter by module name.
            log_type: Filter by log type.
            internal_status: Filter by internal status.
            limit: Maximum number of rows.
            offset: Number of rows to skip.
        """
        db: Session = self.session_factory()
        try:
            query = db.query(IntegrationLog)
            if module_name:
                query = query.filter(IntegrationLog.module_name == module_name)
            if log_type:
                query = query.filter(IntegrationLog.log_type == log_type)
            if internal_status:
                query = query.filter(IntegrationLog.internal_status == internal_status)
            rows = (
                query.order_by(IntegrationLog.log_date.desc(), IntegrationLog.id.desc())
                .limit(limit)
                .offset(offset)
                .all()
            )
            for row in rows:
                db.expunge(row)
            return rows
        finally:
            db.close()

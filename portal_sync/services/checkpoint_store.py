"""Checkpoint store for per-entity sync high-water marks.

All checkpoints live in one document. Every mutation loads the document,
changes it, and writes the whole thing back through a backend.
"""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from portal_sync.exceptions import (
    CheckpointError,
    CheckpointExistsError,
    CheckpointNotFoundError,
    ConfigurationError,
)
from portal_sync.models.checkpoint import (
    CheckpointDocument,
    CheckpointStatus,
    SyncCheckpoint,
    SyncDirection,
)
from portal_sync.models.sync_checkpoint import SyncCheckpointRecord
from portal_sync.timeutils import isoformat_z, utc_now

logger = logging.getLogger(__name__)


class InMemoryCheckpointBackend:
    """Keeps the serialized document in memory. Used by tests."""

    def __init__(self, document: Optional[Dict[str, Any]] = None):
        self._data = json.loads(json.dumps(document)) if document else None

    def load(self) -> CheckpointDocument:
        if self._data is None:
            return CheckpointDocument()
        return CheckpointDocument.model_validate(self._data)

    def save(self, document: CheckpointDocument) -> None:
        self._data = document.model_dump(mode="json")


class JsonFileCheckpointBackend:
    """Stores the document as pretty-printed JSON on disk."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> CheckpointDocument:
        """Read the document, returning an empty one if the file is missing.

        Raises:
            CheckpointError: If the file exists but cannot be read or parsed.
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return CheckpointDocument()
        except (OSError, json.JSONDecodeError) as e:
            raise CheckpointError(f"Failed to load sync data: {e}") from e

        try:
            return CheckpointDocument.model_validate(data)
        except ValidationError as e:
            raise CheckpointError(f"Invalid checkpoint document {self.path}: {e}") from e

    def save(self, document: CheckpointDocument) -> None:
        """Write to a temp file in the same directory, then rename over the target."""
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".checkpoints-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document.model_dump(mode="json"), f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise CheckpointError(f"Failed to save sync data: {e}") from e


class SqlCheckpointBackend:
    """Stores each checkpoint as a row of the ``sync_checkpoints`` table.

    The document metadata block is not persisted; it is rebuilt on load.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def load(self) -> CheckpointDocument:
        """Read every checkpoint row.

        Raises:
            CheckpointError: If the table cannot be read or a row is invalid.
        """
        db: Session = self.session_factory()
        try:
            rows = db.query(SyncCheckpointRecord).order_by(SyncCheckpointRecord.id).all()
            records = [self._to_model(row) for row in rows]
        except SQLAlchemyError as e:
            raise CheckpointError(f"Failed to load sync data: {e}") from e
        except (ValidationError, ValueError) as e:
            raise CheckpointError(f"Invalid checkpoint row: {e}") from e
        finally:
            db.close()
        return CheckpointDocument(sync_records=records)

    def save(self, document: CheckpointDocument) -> None:
        db: Session = self.session_factory()
        try:
            db.query(SyncCheckpointRecord).delete()
            for record in document.sync_records:
                db.add(self._to_row(record))
            db.commit()
        except Exception as e:
            db.rollback()
            raise CheckpointError(f"Failed to save sync data: {e}") from e
        finally:
            db.close()

    @staticmethod
    def _to_model(row: SyncCheckpointRecord) -> SyncCheckpoint:
        return SyncCheckpoint(
            module_name=row.module_name,
            integration_name=row.integration_name,
            direction=row.direction,
            endpoint=row.endpoint,
            status=row.status,
            last_sync_at=row.last_sync_at,
            updated_at=row.updated_at,
            metadata=json.loads(row.metadata_json) if row.metadata_json else {},
        )

    @staticmethod
    def _to_row(record: SyncCheckpoint) -> SyncCheckpointRecord:
        return SyncCheckpointRecord(
            module_name=record.module_name,
            integration_name=record.integration_name,
            direction=record.direction.value,
            endpoint=record.endpoint,
            status=record.status.value,
            last_sync_at=record.last_sync_at,
            updated_at=record.updated_at,
            metadata_json=json.dumps(record.metadata, default=str) if record.metadata else None,
        )


class CheckpointStore:
    """Read and mutate sync checkpoints.

    Read-modify-write cycles are serialized with a lock so that two updates in
    the same process cannot interleave.
    """

    def __init__(self, backend):
        """Initialize checkpoint store.

        Args:
            backend: Object with ``load() -> CheckpointDocument`` and
                ``save(CheckpointDocument)``.
        """
        self.backend = backend
        self._lock = threading.RLock()

    def get(self, identifier: str) -> Optional[SyncCheckpoint]:
        """Get the checkpoint for a module name or integration name.

        Args:
            identifier: Module name or integration name.

        Returns:
            The checkpoint, or None if none resolves.
        """
        with self._lock:
            document = self.backend.load()
            index = document.find_index(identifier)
            return document.sync_records[index] if index >= 0 else None

    def create(
        self,
        module_name: str,
        integration_name: Optional[str] = None,
        direction: SyncDirection = SyncDirection.INBOUND,
        endpoint: Optional[str] = None,
        status: CheckpointStatus = CheckpointStatus.PENDING,
    ) -> SyncCheckpoint:
        """Create a new checkpoint.

        Args:
            module_name: Module name (primary identifier).
            integration_name: Optional alternate identifier.
            direction: inbound or outbound.
            endpoint: Optional descriptive endpoint.
            status: Initial status, pending unless given.

        Returns:
            The created checkpoint.

        Raises:
            CheckpointExistsError: If either name already resolves to a checkpoint.
            ConfigurationError: If module_name is empty.
        """
        if not module_name:
            raise ConfigurationError("module_name is required to create a sync record")

        with self._lock:
            document = self.backend.load()
            if document.find_index(module_name, integration_name) >= 0:
                raise CheckpointExistsError(
                    f"Sync record already exists for module: {module_name} or integration: {integration_name}"
                )

            record = SyncCheckpoint(
                module_name=module_name,
                integration_name=integration_name,
                direction=SyncDirection(direction),
                endpoint=endpoint,
                status=CheckpointStatus(status),
                last_sync_at=None,
                updated_at=utc_now(),
            )
            document.sync_records.append(record)
            self.backend.save(document)

        logger.info(f"Created sync record for module '{module_name}'")
        return record

    def update(self, identifier: str, changes: Dict[str, Any]) -> SyncCheckpoint:
        """Merge changes into an existing checkpoint.

        ``updated_at`` is always stamped. ``last_sync_at`` is kept unless the
        caller passes the key; an explicit None clears it. ``metadata`` is
        replaced as a whole when given.

        Args:
            identifier: Module name or integration name.
            changes: Partial field values.

        Returns:
            The updated checkpoint.

        Raises:
            CheckpointNotFoundError: If no checkpoint resolves.
        """
        with self._lock:
            document = self.backend.load()
            index = document.find_index(identifier)
            if index < 0:
                raise CheckpointNotFoundError(f"Sync record not found for identifier: {identifier}")

            current = document.sync_records[index]
            merged = current.model_dump()
            merged.update({k: v for k, v in changes.items() if k != "updated_at"})
            if "last_sync_at" not in changes:
                merged["last_sync_at"] = current.last_sync_at
            merged["updated_at"] = utc_now()

            updated = SyncCheckpoint.model_validate(merged)
            document.sync_records[index] = updated
            self.backend.save(document)

        logger.debug(f"Updated sync record '{identifier}' (status={updated.status.value})")
        return updated

    def delete(self, identifier: str) -> SyncCheckpoint:
        """Delete a checkpoint.

        Raises:
            CheckpointNotFoundError: If no checkpoint resolves.
        """
        with self._lock:
            document = self.backend.load()
            index = document.find_index(identifier)
            if index < 0:
                raise CheckpointNotFoundError(f"Sync record not found for identifier: {identifier}")
            removed = document.sync_records.pop(index)
            self.backend.save(document)

        logger.info(f"Deleted sync record '{identifier}'")
        return removed

    def list(
        self,
        status: Optional[CheckpointStatus] = None,
        direction: Optional[SyncDirection] = None,
    ) -> List[SyncCheckpoint]:
        """List checkpoints, optionally filtered by status and direction."""
        with self._lock:
            records = self.backend.load().sync_records
        if status is not None:
            records = [r for r in records if r.status == CheckpointStatus(status)]
        if direction is not None:
            records = [r for r in records if r.direction == SyncDirection(direction)]
        return records

    def statistics(self) -> Dict[str, Any]:
        """Summarize checkpoints by status and direction.

        Returns:
            Dictionary with total, by_status, by_direction and last_updated
            (ISO string of the most recent ``updated_at``, or None).
        """
        records = self.list()
        by_status = {s.value: 0 for s in CheckpointStatus}
        by_direction = {d.value: 0 for d in SyncDirection}
        last_updated: Optional[datetime] = None

        for record in records:
            by_status[record.status.value] += 1
            by_direction[record.direction.value] += 1
            if record.updated_at and (last_updated is None or record.updated_at > last_updated):
                last_updated = record.updated_at

        return {
            "total": len(records),
            "by_status": by_status,
            "by_direction": by_direction,
            "last_updated": isoformat_z(last_updated) if last_updated else None,
        }

    def reset(self, identifier: str) -> SyncCheckpoint:
        """Put one checkpoint back to pending and clear its last sync time."""
        return self.update(
            identifier,
            {"status": CheckpointStatus.PENDING, "last_sync_at": None, "metadata": {}},
        )

    def reset_all(self) -> int:
        """Put every checkpoint back to pending and clear last sync times.

        Returns:
            Number of checkpoints reset.
        """
        with self._lock:
            document = self.backend.load()
            now = utc_now()
            document.sync_records = [
                record.model_copy(
                    update={
                        "status": CheckpointStatus.PENDING,
                        "last_sync_at": None,
                        "updated_at": now,
                        "metadata": {},
                    }
                )
                for record in document.sync_records
            ]
            self.backend.save(document)

        logger.info(f"Reset {len(document.sync_records)} sync records")
        return len(document.sync_records)


def build_checkpoint_store(settings, session_factory: Optional[sessionmaker] = None) -> CheckpointStore:
    """Build a store for the configured backend.

    Args:
        settings: Application settings.
        session_factory: Session factory for the database backend
            (defaults to ``SessionLocal``).

    Raises:
        ConfigurationError: If ``checkpoint_backend`` is not recognized.
    """
    backend_name = settings.checkpoint_backend.lower()
    if backend_name == "file":
        return CheckpointStore(JsonFileCheckpointBackend(settings.checkpoint_path))
    if backend_name == "database":
        if session_factory is None:
            from portal_sync.database.database import SessionLocal, init_db

            init_db()
            session_factory = SessionLocal
        return CheckpointStore(SqlCheckpointBackend(session_factory))
    if backend_name == "memory":
        return CheckpointStore(InMemoryCheckpointBackend())
    raise ConfigurationError(
        f"Unknown checkpoint backend '{settings.checkpoint_backend}' (expected file, database or memory)"
    )

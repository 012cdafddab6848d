"""Test checkpoint, mapping and database models."""

import pytest
from datetime import datetime, timedelta, timezone
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from portal_sync.models import (
    CheckpointDocument,
    CheckpointStatus,
    FieldMapping,
    IntegrationLog,
    SyncCheckpoint,
    SyncCheckpointRecord,
    SyncDirection,
)
from portal_sync.timeutils import ensure_utc, isoformat_z


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


class TestSyncCheckpoint:
    """Test the SyncCheckpoint model."""

    def test_defaults(self):
        record = SyncCheckpoint(module_name="Members")

        assert record.status == CheckpointStatus.PENDING
        assert record.direction == SyncDirection.INBOUND
        assert record.last_sync_at is None
        assert record.metadata == {}

    def test_parses_z_timestamps(self):
        record = SyncCheckpoint(module_name="Members", last_sync_at="2025-09-01T00:00:00Z")

        assert record.last_sync_at == datetime(2025, 9, 1, tzinfo=timezone.utc)

    def test_offset_timestamps_normalized_to_utc(self):
        record = SyncCheckpoint(module_name="Members", last_sync_at="2025-09-01T05:30:00+05:30")

        assert record.last_sync_at == datetime(2025, 9, 1, tzinfo=timezone.utc)
        assert record.last_sync_at.utcoffset() == timedelta(0)

    def test_serializes_with_z(self):
        record = SyncCheckpoint(
            module_name="Members",
            last_sync_at=datetime(2025, 9, 15, 8, 30, 12, 345000, tzinfo=timezone.utc),
        )

        dumped = record.model_dump(mode="json")
        assert dumped["last_sync_at"] == "2025-09-15T08:30:12Z"
        assert dumped["updated_at"] is None
        assert dumped["status"] == "pending"

    def test_legacy_completed_status(self):
        record = SyncCheckpoint(module_name="Members", status="completed")

        assert record.status == CheckpointStatus.SUCCESS

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            SyncCheckpoint(module_name="Members", status="running")

    def test_null_metadata(self):
        record = SyncCheckpoint(module_name="Members", metadata=None)

        assert record.metadata == {}

    def test_matches_module_or_integration(self):
        record = SyncCheckpoint(module_name="Members", integration_name="SugarCRMAccountToPortalMember")

        assert record.matches("Members")
        assert record.matches("SugarCRMAccountToPortalMember")
        assert not record.matches("Cases")


class TestCheckpointDocument:
    """Test the CheckpointDocument model."""

    def test_empty_document(self):
        document = CheckpointDocument()

        assert document.sync_records == []
        assert document.metadata.version == "1.0.0"

    def test_find_index(self):
        document = CheckpointDocument(
            sync_records=[
                {"module_name": "Members", "integration_name": "SugarCRMAccountToPortalMember"},
                {"module_name": "Cases"},
            ]
        )

        assert document.find_index("Cases") == 1
        assert document.find_index(None, "SugarCRMAccountToPortalMember") == 0
        assert document.find_index("Auditors") == -1
        assert document.find_index(None) == -1


class TestFieldMapping:
    """Test the FieldMapping model."""

    def test_source_fields(self):
        mapping = FieldMapping(
            field_mappings={
                "id": {"portal_field": "sugarcrm_id", "required": True},
                "name": {"portal_field": "member_name", "transform": "trim"},
            }
        )

        assert mapping.source_fields() == ["id", "name"]
        assert mapping.required_source_fields() == ["id"]
        assert mapping.field_mappings["name"].required is False
        assert mapping.field_mappings["id"].transform == "direct"

    def test_frozen(self):
        mapping = FieldMapping(field_mappings={"id": {"portal_field": "sugarcrm_id"}})

        with pytest.raises(ValidationError):
            mapping.default_values = {"status_c": "Active"}

    def test_portal_field_required(self):
        with pytest.raises(ValidationError):
            FieldMapping(field_mappings={"id": {"required": True}})


class TestTimeutils:
    """Test the UTC helpers."""

    def test_naive_assumed_utc(self):
        assert ensure_utc(datetime(2025, 9, 1)) == datetime(2025, 9, 1, tzinfo=timezone.utc)

    def test_isoformat_z_drops_microseconds(self):
        assert isoformat_z(datetime(2025, 9, 1, 12, 0, 0, 999999, tzinfo=timezone.utc)) == "2025-09-01T12:00:00Z"

    def test_isoformat_z_converts_offset(self):
        tz = timezone(timedelta(hours=2))
        assert isoformat_z(datetime(2025, 9, 1, 2, 0, tzinfo=tz)) == "2025-09-01T00:00:00Z"


class TestIntegrationLogModel:
    """Test IntegrationLog model."""

    def test_create_log(self, db_session):
        log = IntegrationLog(log_type="Info", module_name="Members", internal_status="Created", message="ok")
        db_session.add(log)
        db_session.commit()

        assert log.id is not None
        assert log.log_date is not None
        assert log.source_id is None

    def test_message_required(self, db_session):
        db_session.add(IntegrationLog(log_type="Info", module_name="Members"))

        with pytest.raises(IntegrityError):
            db_session.commit()


class TestSyncCheckpointRecordModel:
    """Test SyncCheckpointRecord model."""

    def test_module_name_unique(self, db_session):
        db_session.add(SyncCheckpointRecord(module_name="Members"))
        db_session.commit()

        db_session.add(SyncCheckpointRecord(module_name="Members"))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_status_constraint(self, db_session):
        db_session.add(SyncCheckpointRecord(module_name="Members", status="running"))

        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_direction_constraint(self, db_session):
        db_session.add(SyncCheckpointRecord(module_name="Members", direction="sideways"))

        with pytest.raises(IntegrityError):
            db_session.commit()

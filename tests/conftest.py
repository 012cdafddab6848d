"""Shared fixtures."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from portal_sync.database.database import Base
from portal_sync.models import IntegrationLog, SyncCheckpointRecord  # noqa: F401
from portal_sync.services.checkpoint_store import CheckpointStore, InMemoryCheckpointBackend
from portal_sync.services.field_transformer import FieldMappingLoader, FieldTransformer
from portal_sync.services.outcome_ledger import OutcomeLedger

MEMBER_MAPPING = {
    "field_mappings": {
        "id": {"portal_field": "sugarcrm_id", "required": True, "transform": "direct"},
        "name": {"portal_field": "member_name", "required": True, "transform": "trim"},
        "tm_id_c": {"portal_field": "tm_id_c", "required": True, "transform": "trim"},
        "status_c": {"portal_field": "status_c", "required": False, "transform": "direct"},
        "membership_category_c": {"portal_field": "membership_category_c", "required": False, "transform": "direct"},
    },
    "default_values": {"status_c": "Active"},
    "computed_fields": {},
    "validation_rules": {"required_fields": ["sugarcrm_id", "member_name"]},
}


@pytest.fixture
def session_factory():
    """Session factory over a shared in-memory SQLite database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def ledger(session_factory):
    return OutcomeLedger(session_factory)


@pytest.fixture
def store():
    return CheckpointStore(InMemoryCheckpointBackend())


@pytest.fixture
def mapping_document():
    return {"sugarcrm_to_portal_members": MEMBER_MAPPING}


@pytest.fixture
def transformer(mapping_document):
    return FieldTransformer(FieldMappingLoader(mappings=mapping_document))

"""Database configuration and session management."""

import os
import logging
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import declarative_base, sessionmaker

from portal_sync.config import settings

logger = logging.getLogger(__name__)

# Create data directory if it doesn't exist
os.makedirs("data", exist_ok=True)

# Create SQLAlchemy engine
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {},
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create declarative base for models
Base = declarative_base()


def get_db():
    """Get database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Initialize database tables.

    Creates the integration log and checkpoint tables if they don't exist.
    Safe to call on every run.

    Args:
        bind: Optional engine to initialize instead of the configured one.
    """
    # Import all models to ensure they are registered with Base
    from portal_sync.models import IntegrationLog, SyncCheckpointRecord  # noqa: F401

    target = bind or engine
    existing_tables = inspect(target).get_table_names()
    if not existing_tables:
        logger.info("No existing tables found. Creating all tables...")

    Base.metadata.create_all(bind=target)

    created_tables = inspect(target).get_table_names()
    logger.debug(f"Database initialized with tables: {created_tables}")

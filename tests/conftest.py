"""Global test fixtures."""

import os

# Settings are read at import time, so these must be set before any
# oidsync module is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("HLI_AUTH_TOKEN", "test-token")
os.environ.setdefault("HLI_BASE_URL", "https://hli.test")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from oidsync.database import init_db
from oidsync.models.oid_models import HliApiConfig, OidRecord


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def make_record(engine):
    """Insert an OidRecord and return it detached from its session."""

    def _make(oid: str, **fields) -> OidRecord:
        fields.setdefault("code_group_name", f"group {oid}")
        with Session(engine) as session:
            record = OidRecord(oid=oid, **fields)
            session.add(record)
            session.commit()
            session.refresh(record)
            return record

    return _make


@pytest.fixture
def make_config(engine):
    def _make(config_name: str = "default", **fields) -> HliApiConfig:
        with Session(engine) as session:
            config = HliApiConfig(config_name=config_name, **fields)
            session.add(config)
            session.commit()
            session.refresh(config)
            return config

    return _make

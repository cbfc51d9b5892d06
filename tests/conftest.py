"""Test configuration and fixtures."""

from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from changegraph.db.base import Base, create_db_engine
from changegraph.events import EventBus
from changegraph.primitives import TenantContext
from changegraph.services import ProjectService, RecordTypeService
from changegraph.storage import SqlSchemaStorage


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Create a fresh in-memory database for each test."""
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def ctx() -> TenantContext:
    return TenantContext(tenant_id="tenant-a", user_id="user-1")


@pytest.fixture
def storage(db_session, ctx) -> SqlSchemaStorage:
    return SqlSchemaStorage(db_session, ctx)


@pytest.fixture
def bus() -> Generator[EventBus, None, None]:
    """A fresh event bus per test; closed afterwards."""
    event_bus = EventBus()
    yield event_bus
    event_bus.close()


@pytest.fixture
def project(storage):
    return ProjectService(storage).create_project("Service Desk", "ITSM project")


@pytest.fixture
def task_and_incident(storage, project):
    """``incident`` inherits from ``task``, which defines ``title``."""
    svc = RecordTypeService(storage)
    task = svc.create_record_type(
        key="task",
        name="Task",
        project_id=project.id,
        schema={"fields": [{"name": "title", "type": "string", "required": True}]},
    )
    incident = svc.create_record_type(
        key="incident",
        name="Incident",
        project_id=project.id,
        base_type="task",
        schema={
            "fields": [
                {"name": "title", "type": "string", "required": True},
                {"name": "severity", "type": "choice"},
            ]
        },
    )
    return task, incident

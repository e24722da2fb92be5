"""Pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite database with the full schema.
Workflows commit, so isolation comes from the fresh database rather than
from rolling back a session.
"""

import os

# Must be set before worksafe modules read their settings
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from worksafe.core.config import Settings
from worksafe.core.permits import ExtensionWorkflow, PermitWorkflow
from worksafe.core.security import create_access_token
from worksafe.db.base import Base
from worksafe.db import models  # noqa: F401  registers tables

from tests.factories import FailingSink, RecordingSink, create_site, create_user


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", _enable_foreign_keys)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def settings():
    return Settings(_env_file=None, database_url="sqlite://")


@pytest.fixture()
def sink():
    return RecordingSink()


@pytest.fixture()
def failing_sink():
    return FailingSink()


@pytest.fixture()
def workflow(db_session, sink, settings):
    return PermitWorkflow(db_session, sink=sink, settings=settings)


@pytest.fixture()
def extension_workflow(db_session, sink, settings):
    return ExtensionWorkflow(db_session, sink=sink, settings=settings)


# ---------------------------------------------------------------------------
# People and sites
# ---------------------------------------------------------------------------


@pytest.fixture()
def requester(db_session):
    return create_user(db_session, name="Requester")


@pytest.fixture()
def area_manager(db_session):
    return create_user(db_session, name="Area Manager")


@pytest.fixture()
def safety_officer(db_session):
    return create_user(db_session, name="Safety Officer")


@pytest.fixture()
def site_leader(db_session):
    return create_user(db_session, name="Site Leader")


@pytest.fixture()
def full_site(db_session, area_manager, safety_officer, site_leader):
    """Site with all three approval roles assigned."""
    return create_site(
        db_session,
        area_manager=area_manager,
        safety_officer=safety_officer,
        site_leader=site_leader,
    )


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@pytest.fixture()
def client(session_factory, sink):
    from worksafe.api.main import app
    from worksafe.api.deps import get_db, get_notification_sink

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_sink] = lambda: sink
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    def _headers(user) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}
    return _headers

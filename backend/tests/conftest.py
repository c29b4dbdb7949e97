# backend/tests/conftest.py
"""
Shared fixtures.

The environment is pinned before anything from smartcal is imported so the
module-level settings and engine point at an in-memory SQLite database and
the in-process memory:// change feed.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BROADCAST_URL"] = "memory://"
os.environ.setdefault("DEFAULT_TIMEZONE", "UTC")

from broadcaster import Broadcast  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from smartcal.api.dependencies.database import get_db  # noqa: E402
from smartcal.database import Base, create_db_engine  # noqa: E402
from smartcal.main import app  # noqa: E402

# Import models so Base.metadata is populated for create_all.
import smartcal.models  # noqa: F401, E402

OWNER_ID = "owner-1"
OTHER_OWNER_ID = "owner-2"


@pytest.fixture(scope="function")
def _unit_engine():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(_unit_engine) -> sessionmaker:
    return sessionmaker(bind=_unit_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def unit_db(session_factory) -> Session:
    """A session on a fresh in-memory database; services commit freely."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
async def broadcast():
    """A connected memory:// broadcaster private to one test."""
    instance = Broadcast("memory://")
    await instance.connect()
    try:
        yield instance
    finally:
        await instance.disconnect()


@pytest.fixture
def client(session_factory):
    """Test client whose requests each get their own session on the test database."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"X-User-Id": OWNER_ID}

"""
Test configuration and fixtures.

Provides:
- SQLite in-memory database session (schema created per test)
- In-memory repository fake and record factories for engine tests
- HTTPX AsyncClient for the internal router
"""
import os
import uuid
from dataclasses import replace
from typing import AsyncGenerator, Generator

# Settings are read at import time.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["INTERNAL_SECRET"] = "test-internal-secret"
os.environ["REDIS_URL"] = "memory://"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from issuelink.core.config import settings
from issuelink.core.deps import get_db
from issuelink.db.base import Base
from issuelink.db.models import Organization
from issuelink.db.session import SessionLocal, engine
from issuelink.main import app
from issuelink.services.reconciliation_service import ReconciliationConfig

from factories import InMemoryRepository



@pytest.fixture
def org_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def config() -> ReconciliationConfig:
    """Settings-derived config with no retry delay and no lock wait."""
    return replace(
        ReconciliationConfig.from_settings(settings),
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        max_workers=2,
        lock_timeout_seconds=0,
    )


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Creates a fresh schema in the shared in-memory database for each test.
    """
    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def test_org(db: Session) -> Organization:
    """Create a test organization."""
    org = Organization(
        id=uuid.uuid4(),
        name="Test Organization",
        slug=f"test-org-{uuid.uuid4().hex[:8]}",
    )
    db.add(org)
    db.commit()
    return org


@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX client bound to the app with the test session."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="https://test",
    ) as c:
        yield c
    app.dependency_overrides.clear()

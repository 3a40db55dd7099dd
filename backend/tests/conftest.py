"""Shared test fixtures for the store access stats service."""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "development"
os.environ["STATS_TIMEZONE"] = "UTC"

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from storestats.core.config import get_settings
from storestats.core.database import Base, SessionLocal, engine
from storestats.core.limiter import limiter
from storestats.main import app
from storestats.models import AccessLog


@pytest.fixture(autouse=True)
def reset_state():
    """Drop and recreate all tables, empty the cache and rate limits between tests."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    app.state.stats_cache.clear()
    limiter.reset()
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def add_access(db_session):
    """Insert an access log row: add_access(store_id, ip_hash, created_at)."""
    def _add(store_id: int, ip_hash: str = "a" * 64, created_at: datetime | None = None) -> AccessLog:
        row = AccessLog(
            store_id=store_id,
            url=f"/store/{store_id}",
            ip_hash=ip_hash,
            user_agent="pytest",
            referer="",
            created_at=created_at or datetime.now(timezone.utc),
        )
        db_session.add(row)
        db_session.commit()
        return row

    return _add

"""
Pytest fixtures for testing
"""
import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy import create_engine, JSON
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from sqlalchemy.dialects.postgresql import JSONB

from streakbook.config import get_settings
from streakbook.infrastructure.db.session import Base
from streakbook.infrastructure.db import models  # noqa: F401  (registers tables)
from streakbook.infrastructure.db.models import Profile, RoutineModel


def _remap_jsonb():
    # SQLite has no JSONB: remap to JSON for tests
    for table in Base.metadata.tables.values():
        for col in table.columns:
            if isinstance(col.type, JSONB):
                col.type = JSON()


@pytest.fixture
def db_engine():
    """In-memory SQLite shared across threads (TestClient runs sync routes in a pool)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _remap_jsonb()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite, for tests that need several real connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'streakbook.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    _remap_jsonb()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def sample_user(db_session) -> Profile:
    """Free-tier profile (id=1)"""
    user = Profile(id=1, email="anna@example.com", name="Anna", subscription_plan="basic")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def pro_user(db_session) -> Profile:
    """Pro profile whose subscription runs for another year (id=2)"""
    user = Profile(
        id=2, email="pro@example.com", name="Pro",
        subscription_plan="pro",
        subscription_expires_at=datetime.now(timezone.utc) + timedelta(days=365),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def make_routine(db_session):
    """Factory: insert a routine row directly (no use case, no events)."""
    counter = {"n": 0}

    def _make(user_id: int, name: str | None = None, status: str = "active", **fields) -> RoutineModel:
        counter["n"] += 1
        routine = RoutineModel(
            user_id=user_id,
            name=name or f"Routine {counter['n']}",
            icon="sun",
            color="#FFAA00",
            category="health",
            status=status,
            current_streak=fields.pop("current_streak", 0),
            longest_streak=fields.pop("longest_streak", 0),
            total_completions=fields.pop("total_completions", 0),
            **fields,
        )
        db_session.add(routine)
        db_session.commit()
        return routine

    return _make


@pytest.fixture
def override_settings(monkeypatch):
    """Set environment values and rebuild the cached Settings; restored afterwards."""
    def _apply(**values):
        for key, value in values.items():
            monkeypatch.setenv(key, str(value))
        get_settings.cache_clear()

    yield _apply
    get_settings.cache_clear()

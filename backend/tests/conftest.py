"""Pytest fixtures for matching engine testing.

Provides reusable test fixtures for:
- In-memory SQLite database with SAVEPOINT support, one per test
- Offer and need factories with pinned creation order
- Mocked notification dispatcher
- A MatchingEngine wired to the test session

Usage:
    def test_offer_matches(matching_engine, make_offer, make_need, community_id):
        need = make_need(community_id, survey={"category": "meal"})
        offer = make_offer(community_id, survey={"category": "meal"})
        outcome = matching_engine.on_entity_created(offer, community_id)
        assert outcome.status == "matched"
"""

import json
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator
from unittest.mock import Mock
from uuid import UUID, uuid4

# Set environment variables BEFORE any imports to ensure they take effect
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

import pytest
from sqlalchemy.orm import sessionmaker, Session

from neighborshare.config import EngineConfig
from neighborshare.database import build_engine
from neighborshare.engine import MatchingEngine
from neighborshare.integrations.ports import NotificationDispatcherPort
from neighborshare.models import Base, Offer, Need

# Fixed reference time; factories space creation timestamps from here
BASE_TIME = datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_engine():
    """In-memory SQLite engine with all tables created."""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def community_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_community_id() -> UUID:
    return uuid4()


@pytest.fixture
def make_offer(db_session: Session):
    """Factory for committed offers.

    Each call gets a created_at one minute after the previous one, so fetch
    order equals call order.
    """
    counter = {"n": 0}

    def _make_offer(
        community_id: UUID,
        survey=None,
        owner_id: UUID = None,
        status: str = "active",
        expiry_at: datetime = None,
        title: str = "Leftover lasagna",
        created_at: datetime = None,
    ) -> Offer:
        counter["n"] += 1
        offer = Offer(
            owner_id=owner_id or uuid4(),
            community_id=community_id,
            title=title,
            survey_json=survey if isinstance(survey, str) else json.dumps(survey or {}),
            status=status,
            expiry_at=expiry_at or datetime.now(timezone.utc) + timedelta(days=2),
            created_at=created_at or BASE_TIME + timedelta(minutes=counter["n"]),
        )
        db_session.add(offer)
        db_session.commit()
        return offer

    return _make_offer


@pytest.fixture
def make_need(db_session: Session):
    """Factory for committed needs (same ordering rule as make_offer)."""
    counter = {"n": 0}

    def _make_need(
        community_id: UUID,
        survey=None,
        owner_id: UUID = None,
        status: str = "active",
        urgency: str = "normal",
        created_at: datetime = None,
    ) -> Need:
        counter["n"] += 1
        need = Need(
            owner_id=owner_id or uuid4(),
            community_id=community_id,
            title="Looking for dinner",
            survey_json=survey if isinstance(survey, str) else json.dumps(survey or {}),
            status=status,
            urgency=urgency,
            created_at=created_at or BASE_TIME + timedelta(minutes=counter["n"]),
        )
        db_session.add(need)
        db_session.commit()
        return need

    return _make_need


@pytest.fixture
def notifications() -> Mock:
    """Mocked notification dispatcher."""
    return Mock(spec=NotificationDispatcherPort)


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def matching_engine(db_session: Session, engine_config: EngineConfig, notifications: Mock) -> MatchingEngine:
    """MatchingEngine over the test session with SQL listings and channels."""
    return MatchingEngine(db_session, engine_config, notifications=notifications)


@pytest.fixture
def meal_survey():
    return {
        "category": "meal",
        "tags": ["halal"],
        "quantity": 2,
        "time_window": "evening",
        "distance_km": 3,
    }

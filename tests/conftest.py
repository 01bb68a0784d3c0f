"""Shared fixtures: in-memory SQLite store, profiles, API client."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

from unittest.mock import MagicMock
from uuid import uuid4

import pytest

import fleet_rewards.models  # noqa: F401
from fleet_rewards.db.base import Base
from fleet_rewards.db.session import build_engine, build_session_factory
from fleet_rewards.models.profile import Profile


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_profile(db):
    def _make(user_id=None, email=None, is_admin=False, **kwargs):
        user_id = user_id or str(uuid4())
        profile = Profile(
            id=user_id,
            email=email or f"{user_id}@example.com",
            full_name=kwargs.get("full_name", "Test Driver"),
            user_type=kwargs.get("user_type", "driver"),
            is_admin=is_admin,
        )
        db.add(profile)
        db.commit()
        return profile

    return _make


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.incr.return_value = 1
    return client


@pytest.fixture
def client(session_factory, redis_client):
    from fastapi.testclient import TestClient

    from fleet_rewards.main import create_app

    app = create_app(session_factory=session_factory, redis_client=redis_client)
    with TestClient(app) as test_client:
        yield test_client

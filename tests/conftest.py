from __future__ import annotations

from typing import Optional
import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.ai.providers.factory import reset_ai_provider_cache
from src.core.config import get_settings
from src.core.metrics import reset_metrics_for_tests
from src.core.runtime import reset_runtime_config_cache
from src.messaging.gateway import LogMessagingGateway, reset_messaging_gateway_cache
from src.storage.db import Base, load_models
from src.storage.models import User

from tests.helpers import FakeProvider, FakeRedis, FixedClock


def _clear_caches() -> None:
    get_settings.cache_clear()
    reset_runtime_config_cache()
    reset_ai_provider_cache()
    reset_messaging_gateway_cache()
    reset_metrics_for_tests()


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("AI_PROVIDER", "mock")
    monkeypatch.setenv("MESSAGING_PROVIDER", "log")
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite://")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "")
    monkeypatch.setenv("SENTRY_DSN", "")
    monkeypatch.setenv("APP_PUBLIC_BASE_URL", "https://app.chef-social.test")
    _clear_caches()
    yield
    _clear_caches()


@pytest.fixture
def session_factory():
    load_models()
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    with session_factory() as db_session:
        yield db_session


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def gateway() -> LogMessagingGateway:
    return LogMessagingGateway()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def make_user(session):
    def _make_user(
        *,
        phone: Optional[str] = "+15550001111",
        language: str = "en",
        restaurant_name: str = "Trattoria Lume",
        cuisine_type: Optional[str] = "handmade pasta",
        name: str = "Giulia",
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            name=name,
            phone=phone,
            restaurant_name=restaurant_name,
            cuisine_type=cuisine_type,
            preferred_language=language,
        )
        session.add(user)
        session.commit()
        return user

    return _make_user


@pytest.fixture
def api_client(session_factory, gateway, provider, clock):
    from fastapi.testclient import TestClient

    import src.api.main as api_main
    from src.ai.providers.factory import get_ai_provider
    from src.core.clock import get_clock
    from src.messaging.gateway import get_messaging_gateway
    from src.storage.db import get_session

    def _session_override():
        with session_factory() as db_session:
            yield db_session

    overrides = api_main.app.dependency_overrides
    overrides[get_session] = _session_override
    overrides[get_messaging_gateway] = lambda: gateway
    overrides[get_ai_provider] = lambda: provider
    overrides[get_clock] = lambda: clock
    yield TestClient(api_main.app)
    overrides.clear()

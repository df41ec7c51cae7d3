"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

import aidwatch.models  # noqa: F401  registers every table on Base.metadata
from aidwatch.database import Base


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@pytest.fixture
async def engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def mock_redis():
    """Mock for async Redis - prevents real Redis calls in tests."""
    redis_mock = AsyncMock()
    redis_mock.set = AsyncMock(return_value=True)
    redis_mock.get = AsyncMock(return_value=None)
    redis_mock.ping = AsyncMock(return_value=True)
    with patch("aidwatch.utils.alerting.get_redis", new_callable=AsyncMock, return_value=redis_mock), \
         patch("aidwatch.services.ai.get_redis", new_callable=AsyncMock, return_value=redis_mock), \
         patch("aidwatch.workers.orchestrator.get_redis", new_callable=AsyncMock, return_value=redis_mock):
        yield redis_mock


@pytest.fixture
def mock_ai():
    """Mock for async generate_response - prevents real AI API calls in tests."""
    with patch("aidwatch.services.classifier.generate_response", new_callable=AsyncMock) as mock:
        mock.return_value = {
            "content": (
                '{"isRelevantCrisis": true, "crisisType": "NATURAL_DISASTER", '
                '"severity": "HIGH", "confidence": 0.9, "summary": "Flooding in Jonglei.", '
                '"entities": {"locations": ["Jonglei"], "organizations": [], "keywords": ["flood"]}, '
                '"sentiment": -0.7, "recommendations": []}'
            ),
            "provider": "anthropic",
            "model": "claude-haiku",
            "latency_ms": 500,
            "cost_usd": 0.001,
            "input_tokens": 100,
            "output_tokens": 50,
            "error": None,
        }
        yield mock

"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks Redis and every network call.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from hookgate.database import Base
import hookgate.models  # noqa: F401  (registers tables on Base.metadata)
from hookgate.schemas.gateway_config import GatewayConfig
from hookgate.schemas.signature_config import HmacSignatureConfig
from tests.helpers import SIGNING_SECRET, FakeClock, RecordingSink


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
async def session_factory():
    """In-memory SQLite session factory for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_redis():
    """Mock for async Redis so tests never reach a real server."""
    with patch("hookgate.utils.rate_limiter.get_redis", new_callable=AsyncMock) as mock:
        redis_mock = MagicMock()
        redis_mock.ping = AsyncMock(return_value=True)
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[0, 1, 1, True])
        redis_mock.pipeline.return_value = pipe
        mock.return_value = redis_mock
        yield redis_mock


@pytest.fixture
def hmac_config():
    """Connector config signed with HMAC-SHA256 and secret 'shh'."""
    return GatewayConfig(
        connector_id="acme",
        connector_scope="webhook:acme",
        signature=HmacSignatureConfig(scheme="hmac_sha256", secret=SIGNING_SECRET),
        rate_limit_enabled=False,
    )

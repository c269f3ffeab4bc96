"""
Pytest configuration and fixtures for tests.
Provides the test database, HTTP clients, session tokens and client secrets.
"""
import os

# Settings are read at import time
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-at-least-32-characters-long")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["ENVIRONMENT"] = "development"
os.environ["REDIS_URL"] = ""
os.environ["APP_URL"] = "https://accounts.bfeai.com"
os.environ["SSO_CLIENT_SECRET_KEYWORDS"] = "keywords-test-secret"
os.environ["SSO_CLIENT_SECRET_PAYMENTS"] = "payments-test-secret"
os.environ["SSO_CLIENT_SECRET_ADMIN"] = ""
os.environ["SSO_CLIENT_SECRET_LABS"] = "labs-test-secret"

from typing import AsyncGenerator, Dict, Optional

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from portal.config import settings
from portal.core.cache import KeyedCounter, RedisCache
from portal.core.database import get_db, get_session_factory
from portal.core.identity_client import IdentityClient
from portal.core.rate_limit import limiter
from portal.core.security import create_session_token
from portal.main import app
from portal.models.base import Base
from portal.services.audit_service import AuditLogger, flush_pending
from portal.services.exchange_guard import ExchangeGuard, get_exchange_guard
from portal.services.oauth_service import OAuthService, get_oauth_service


TEST_USER_ID = "user-123"
TEST_USER_EMAIL = "test@example.com"


class InMemoryCounterBackend:
    """Stand-in for RedisCache with the subset KeyedCounter uses."""

    def __init__(self):
        self.values: Dict[str, int] = {}
        self.ttls: Dict[str, int] = {}

    async def increment(self, key: str, amount: int = 1) -> int:
        self.values[key] = self.values.get(key, 0) + amount
        return self.values[key]

    async def expire(self, key: str, ttl: int) -> bool:
        self.ttls[key] = ttl
        return key in self.values

    async def get(self, key: str) -> Optional[str]:
        value = self.values.get(key)
        return str(value) if value is not None else None

    async def delete(self, key: str) -> bool:
        self.ttls.pop(key, None)
        return self.values.pop(key, None) is not None


@pytest.fixture(autouse=True)
def disable_rate_limit():
    """Rate limits are covered separately; keep them out of functional tests."""
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture(scope="function")
async def test_engine(tmp_path):
    """
    Create test database engine.

    A file database with one connection per session, so request sessions
    and detached audit writes never share a transaction.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'portal-test.db'}",
        echo=False,
        poolclass=NullPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await flush_pending()

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def audit(session_factory) -> AuditLogger:
    return AuditLogger(session_factory, ip_address="203.0.113.7", user_agent="pytest")


@pytest.fixture
def counter_backend() -> InMemoryCounterBackend:
    return InMemoryCounterBackend()


@pytest.fixture
def unreachable_redis(mocker) -> RedisCache:
    """RedisCache that connected once and now fails every command."""
    backend = RedisCache()
    backend.redis = mocker.AsyncMock()
    for command in ("get", "incrby", "expire", "delete"):
        getattr(backend.redis, command).side_effect = RedisConnectionError("Connection refused")
    return backend


@pytest.fixture
def exchange_guard(counter_backend) -> ExchangeGuard:
    """Guard backed by an in-memory counter instead of Redis."""
    counter = KeyedCounter("sso:exchange_failures", ttl=900, backend=counter_backend)
    return ExchangeGuard(counter=counter, max_failures=10)


@pytest.fixture
def identity_handler():
    """
    Request handler for the mocked identity backend.

    Tests replace `identity_handler.response` to change the answer.
    """
    class Handler:
        def __init__(self):
            self.requests = []
            self.response = httpx.Response(
                200,
                json={
                    "access_token": "backend-access-token",
                    "user": {
                        "id": TEST_USER_ID,
                        "email": TEST_USER_EMAIL,
                        "user_metadata": {"full_name": "Test User"},
                    },
                },
            )

        def __call__(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return self.response

    return Handler()


@pytest.fixture
def identity(identity_handler) -> IdentityClient:
    return IdentityClient(
        base_url="https://identity.test",
        api_key="anon-key",
        transport=httpx.MockTransport(identity_handler),
    )


@pytest.fixture(scope="function")
async def client(session_factory, exchange_guard, identity) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with dependency overrides."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_exchange_guard] = lambda: exchange_guard
    app.dependency_overrides[get_oauth_service] = lambda: OAuthService(identity)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="https://accounts.bfeai.com") as ac:
        yield ac

    # Clear overrides after test
    app.dependency_overrides.clear()


@pytest.fixture
def session_token() -> str:
    return create_session_token(TEST_USER_ID, TEST_USER_EMAIL)


@pytest.fixture
def session_headers(session_token) -> Dict[str, str]:
    """Cookie header carrying a valid session."""
    return {"Cookie": f"{settings.session_cookie_name}={session_token}"}


@pytest.fixture
def production(mocker):
    """Run the test with ENVIRONMENT=production."""
    mocker.patch.object(settings, "environment", "production")

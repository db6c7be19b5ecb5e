"""
Shared fixtures for the VoiceAuth test suite.

Run with: pytest -v
"""

import os
import tempfile

# Must be set before any app module reads the settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="voiceauth-uploads-"))

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.rate_limiter import rate_limiter
from app.db.session import Base, get_db
from app.services.token_service import get_token_service
import app.models  # noqa: F401


# ============================================
# Database
# ============================================

@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test; one shared connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ============================================
# HTTP
# ============================================

@pytest_asyncio.fixture
async def client(session_factory):
    """httpx client talking to the ASGI app with the test database."""
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http
    app.dependency_overrides.clear()


@pytest.fixture
def api():
    """Prefix an endpoint path with the API base path."""
    from app.core.config import get_settings

    prefix = get_settings().api_prefix
    return lambda path: f"{prefix}{path}"


# ============================================
# Global state
# ============================================

@pytest.fixture(autouse=True)
def reset_rate_limits():
    rate_limiter.clear()
    yield
    rate_limiter.clear()


@pytest.fixture(autouse=True)
def restore_token_clock():
    service = get_token_service()
    original = service.clock
    yield
    service.clock = original


@pytest.fixture
def signup_payload():
    return {
        "fullname": "Alice Liddell",
        "username": "alice",
        "email": "alice@x.com",
        "password": "pw123456",
    }

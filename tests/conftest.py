"""
Shared fixtures: a fresh SQLite database per test, an HTTP client over the
ASGI app, and helpers for creating authenticated users.
"""

import os
import tempfile
from unittest.mock import AsyncMock, MagicMock

# Must be set before chatspace reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="chatspace-uploads-"))
os.environ.setdefault("JWT_SECRET_KEY", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET_KEY", "test-refresh-secret")
os.environ.setdefault("APP_ENV", "development")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from chatspace.core.rate_limiter import rate_limiter
from chatspace.db.session import Base, get_db
from chatspace.realtime import presence
from chatspace.services.ai_service import AIService
from chatspace.services.flag_service import FlagService

PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"
    b"\x08\x06\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f"
    b"\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
)


# ============================================
# Global state
# ============================================

@pytest.fixture(autouse=True)
def reset_state(monkeypatch):
    """Isolate process-wide singletons and keep Socket.IO emits off the wire."""
    rate_limiter.clear()
    presence.clear()
    FlagService.reset()
    monkeypatch.setattr(presence, "server", MagicMock(emit=AsyncMock()))
    yield
    presence.clear()


# ============================================
# Database
# ============================================

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with factory() as db:
        await AIService.ensure_assistant_user(db)
        await db.commit()
    return factory


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ============================================
# HTTP client
# ============================================

@pytest_asyncio.fixture
async def client(session_factory):
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
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def signup(client: AsyncClient, email: str, full_name: str = "Test User", password: str = "password123"):
    """Sign up and return (user_json, access_token, refresh_cookie_value)."""
    response = await client.post(
        "/api/auth/signup",
        json={"fullName": full_name, "email": email, "password": password},
    )
    assert response.status_code == 201, response.text
    body = response.json()
    return body["userData"], body["token"], response.cookies.get("refreshToken")


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def alice(client):
    user, token, refresh = await signup(client, "alice@example.com", "Alice")
    return {"user": user, "token": token, "refresh": refresh}


@pytest_asyncio.fixture
async def bob(client):
    user, token, refresh = await signup(client, "bob@example.com", "Bob")
    return {"user": user, "token": token, "refresh": refresh}

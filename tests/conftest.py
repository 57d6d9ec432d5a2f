"""
Shared fixtures: settings, an in-memory database, a fake Google, and the app.
"""
import asyncio
from urllib.parse import parse_qsl

import httpx
import pytest
from sqlalchemy.exc import ProgrammingError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from dripcore.config import Settings
from dripcore.dependencies.auth import get_google_provider
from dripcore.main import create_app
from dripcore.models.base import Base
from dripcore.models.user import User  # noqa: F401
from dripcore.services.google_provider import GoogleProvider

ACCESS_TOKEN = "ya29.test-access-token"


class FakeGoogle:
    """Stands in for Google's token and userinfo endpoints."""

    def __init__(self):
        self.profile = {
            "sub": "g-100",
            "name": "Ada Lovelace",
            "email": "a@x.com",
            "email_verified": True,
            "picture": "https://lh3.googleusercontent.com/a/ada",
        }
        self.token_error: str | None = None
        self.token_status = 200
        self.userinfo_status = 200
        self.timeout = False
        self.token_requests: list[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.timeout:
            raise httpx.ReadTimeout("timed out", request=request)

        if request.url.path == "/token":
            self.token_requests.append(dict(parse_qsl(request.content.decode())))
            if self.token_error:
                return httpx.Response(
                    400, json={"error": self.token_error, "error_description": "Bad Request"}
                )
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "temporarily_unavailable"})
            return httpx.Response(200, json={
                "access_token": ACCESS_TOKEN,
                "token_type": "Bearer",
                "expires_in": 3599,
                "scope": "openid https://www.googleapis.com/auth/userinfo.email",
            })

        if request.url.path == "/v1/userinfo":
            if request.headers.get("Authorization") != f"Bearer {ACCESS_TOKEN}":
                return httpx.Response(401, json={"error": "invalid_token"})
            return httpx.Response(self.userinfo_status, json=self.profile)

        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class HangingSession:
    """AsyncSession stand-in whose queries never answer."""

    def __init__(self):
        self.execute_calls = 0
        self.added = []

    async def execute(self, statement):
        self.execute_calls += 1
        await asyncio.sleep(60)

    def add(self, obj):
        self.added.append(obj)

    async def commit(self):
        await asyncio.sleep(60)

    async def refresh(self, obj):
        pass

    async def rollback(self):
        self.added.clear()


class BrokenSchemaSession:
    """AsyncSession stand-in whose every statement is refused by the database."""

    def __init__(self):
        self.execute_calls = 0
        self.rollbacks = 0

    async def execute(self, statement):
        self.execute_calls += 1
        raise ProgrammingError("SELECT", {}, Exception('relation "users" does not exist'))

    async def rollback(self):
        self.rollbacks += 1


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        GOOGLE_CLIENT_ID="test-client-id.apps.googleusercontent.com",
        GOOGLE_CLIENT_SECRET="test-client-secret",
        JWT_SECRET_KEY="test-jwt-secret",
        SESSION_SECRET_KEY="test-session-secret",
        STORE_TIMEOUT_SECONDS=2.0,
        STORE_RETRY_BACKOFF_SECONDS=0.0,
        FRONTEND_URL="http://localhost:3000",
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_google():
    return FakeGoogle()


@pytest.fixture
def hanging_session():
    return HangingSession()


@pytest.fixture
def broken_session():
    return BrokenSchemaSession()


@pytest.fixture
def provider(settings, fake_google):
    return GoogleProvider(settings, transport=fake_google.transport)


@pytest.fixture
def app(settings, session_factory, provider):
    app = create_app(settings)
    app.state.session_factory = session_factory
    app.dependency_overrides[get_google_provider] = lambda: provider
    return app


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

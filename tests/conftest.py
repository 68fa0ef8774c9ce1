"""
Pytest fixtures for authcore tests.

Tests run against a temp-file SQLite database so that every session (and
every concurrent task) opens its own connection to the same data.
"""

import os
import re
import tempfile
from typing import AsyncGenerator, Callable, List

# Must be set before authcore is imported: the engine and hasher read settings at import
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
TEST_DB_PATH = _tmp.name
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only-0123456789"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SMTP_HOST"] = ""
os.environ["FRONTEND_URL"] = "http://frontend.test"

from authcore.config import get_settings  # noqa: E402

get_settings.cache_clear()

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from authcore.database import async_session_maker, engine  # noqa: E402
from authcore.kernel.identity.credential_store import CredentialStore  # noqa: E402
from authcore.kernel.identity.jwt import JWTManager  # noqa: E402
from authcore.kernel.models import Base, User, UserRole  # noqa: E402
from authcore.notifications.email import EmailMessage, get_mailer  # noqa: E402

TOKEN_IN_LINK = re.compile(r"token=([0-9a-f]{64})")


def pytest_sessionfinish(session, exitstatus):
    """Clean up temp DB file after test run."""
    for suffix in ("", "-wal", "-shm"):
        path = TEST_DB_PATH + suffix
        if os.path.exists(path):
            os.unlink(path)


class RecordingMailer:
    """Mailer that keeps messages in memory instead of sending them."""

    def __init__(self):
        self.sent: List[EmailMessage] = []

    async def send(self, message: EmailMessage) -> bool:
        self.sent.append(message)
        return True

    def last_token(self) -> str:
        match = TOKEN_IN_LINK.search(self.sent[-1].html)
        assert match, "no token link in last message"
        return match.group(1)


@pytest_asyncio.fixture
async def database():
    """Fresh schema for each test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
def session_maker(database):
    return async_session_maker


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def make_user(database) -> Callable:
    """Factory that commits a user in its own session and returns it detached."""

    async def _make(
        email: str = "alice@example.com",
        password: str = "Password123",
        full_name: str = "Alice",
        verified: bool = True,
        role: UserRole = UserRole.USER,
    ) -> User:
        async with async_session_maker() as session:
            user = await CredentialStore(session).create(
                email=email,
                full_name=full_name,
                password=password,
                role=role,
            )
            user.is_verified = verified
            await session.commit()
            return user

    return _make


@pytest.fixture
def jwt_manager() -> JWTManager:
    """Create a JWT manager for tests."""
    return JWTManager(
        secret_key="test-secret-key-for-testing-only-0123456789",
        algorithm="HS256",
        access_token_expire_minutes=15,
    )


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest_asyncio.fixture
async def client(database, mailer: RecordingMailer) -> AsyncGenerator[AsyncClient, None]:
    """Async client over the app with the recording mailer."""
    from authcore.main import app

    app.dependency_overrides[get_mailer] = lambda: mailer
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_mailer, None)

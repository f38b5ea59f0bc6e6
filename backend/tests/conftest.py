"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.
"""

import os

# Settings are read at import time; tests run against in-memory SQLite
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-quickdesk-tests")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SEED_DEFAULT_CATEGORIES", "false")

import pytest
import pytest_asyncio
from typing import AsyncGenerator, Callable, Dict
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from quickdesk.main import app
from quickdesk.models.base import Base
from quickdesk.models.user import User
from quickdesk.db.session import get_db
from quickdesk.core import config
from quickdesk.core.auth import create_access_token
from quickdesk.core.deps import get_notification_publisher
from quickdesk.api.uploads import get_upload_service
from quickdesk.services import email as email_module
from quickdesk.services.upload_service import UploadService

from tests.factories import FakeS3Client, RecordingPublisher


# Test database URL
# WHY: Using SQLite for tests eliminates external database dependencies
# and makes tests faster.
TEST_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """
    Create a test database engine.

    WHY: Function scope ensures each test gets a fresh database state,
    preventing test pollution and ensuring test isolation.
    """
    engine = create_async_engine(
        TEST_ASYNC_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    """Session factory bound to the test engine (used by the dispatcher)."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session.

    Yields:
        AsyncSession: Database session for the test
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def publisher() -> RecordingPublisher:
    """Collects workflow events instead of queueing them."""
    return RecordingPublisher()


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    publisher: RecordingPublisher,
    s3_client: FakeS3Client,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test HTTP client.

    WHY: AsyncClient allows testing FastAPI endpoints without running
    a real server. The database session, notification publisher and S3
    client are replaced with test doubles.

    Yields:
        AsyncClient: HTTP client for making test requests
    """

    async def override_get_db():
        """Override database dependency with test session."""
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_publisher] = lambda: publisher
    app.dependency_overrides[get_upload_service] = lambda: UploadService(
        s3_client=s3_client, bucket_name="test-bucket"
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[User], Dict[str, str]]:
    """
    Build an Authorization header for a user.

    Usage:
        response = await client.get("/api/tickets", headers=auth_headers(user))
    """

    def _headers(user: User) -> Dict[str, str]:
        token = create_access_token(user.id, role=user.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture(autouse=True)
def use_mock_email_provider(monkeypatch):
    """
    Use mock email provider for all tests.

    WHY: Tests should not send real emails. The mock provider tracks sent
    emails for verification in tests and doesn't require API keys.
    """
    email_module.MockEmailProvider.clear_sent_emails()
    monkeypatch.setattr(config.settings, "RESEND_API_KEY", None)

    yield

    email_module.MockEmailProvider.clear_sent_emails()

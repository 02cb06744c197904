"""
Pytest fixtures for access kernel tests.

Every test gets its own file-backed SQLite database, so separate sessions
really are separate connections and transactions.
"""

import os
import tempfile
import uuid
from typing import AsyncGenerator, Optional

# Settings must see the test environment before agora is imported
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_tmp.name}"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only-0123456789"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from agora.config import get_settings

get_settings.cache_clear()

from agora.database import enable_sqlite_pragmas
from agora.kernel.identity.jwt import JWTManager, reset_jwt_manager
from agora.kernel.models import (
    Base,
    Deliberation,
    DeliberationStatus,
    Participant,
    ParticipantRole,
    Principal,
    PrincipalTier,
)

reset_jwt_manager()


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Create a test database engine on a fresh SQLite file."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'kernel_test.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
    )
    enable_sqlite_pragmas(engine.sync_engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_principal(db_session: AsyncSession):
    """Factory for committed principals."""

    async def _make(
        tier: PrincipalTier = PrincipalTier.STANDARD,
        archived: bool = False,
        display_name: Optional[str] = None,
    ) -> Principal:
        principal = Principal(
            id=uuid.uuid4(),
            display_name=display_name,
            tier=tier,
            is_archived=archived,
        )
        db_session.add(principal)
        await db_session.commit()
        return principal

    return _make


@pytest.fixture
def make_deliberation(db_session: AsyncSession):
    """Factory for committed deliberations."""

    async def _make(
        status: DeliberationStatus = DeliberationStatus.ACTIVE,
        is_public: bool = False,
        facilitator_id: Optional[uuid.UUID] = None,
        title: str = "Test Deliberation",
    ) -> Deliberation:
        deliberation = Deliberation(
            id=uuid.uuid4(),
            title=title,
            status=status,
            is_public=is_public,
            facilitator_id=facilitator_id,
        )
        db_session.add(deliberation)
        await db_session.commit()
        return deliberation

    return _make


@pytest.fixture
def add_participant(db_session: AsyncSession):
    """Factory for committed memberships."""

    async def _add(
        principal_id: uuid.UUID,
        deliberation_id: uuid.UUID,
        role: ParticipantRole = ParticipantRole.PARTICIPANT,
    ) -> Participant:
        participant = Participant(
            id=uuid.uuid4(),
            principal_id=principal_id,
            deliberation_id=deliberation_id,
            role=role,
        )
        db_session.add(participant)
        await db_session.commit()
        return participant

    return _add


@pytest_asyncio.fixture
async def admin(make_principal) -> Principal:
    return await make_principal(tier=PrincipalTier.ADMIN, display_name="Admin")


@pytest_asyncio.fixture
async def member(make_principal) -> Principal:
    return await make_principal(display_name="Member")


@pytest.fixture
def jwt_manager() -> JWTManager:
    """Create a JWT manager for tests."""
    return JWTManager(
        secret_key="test-secret-key-for-testing-only-0123456789",
        algorithm="HS256",
        access_token_expire_minutes=30,
        issuer="agora",
    )

"""
Pytest configuration and shared fixtures for backend tests.
"""

import sys
from pathlib import Path

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import pytest
from typing import AsyncGenerator
from uuid import uuid4

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Import after path is set
from infrastructure.database.models import Base, Organization, TeamMember, TeamRole, User
from infrastructure.database.models.base import utc_now
from infrastructure.database.connection import get_db
from core.security import PasswordHasher, TokenService
from infrastructure.config import get_settings

# Cheap hashing keeps the suite fast; verification works the same
password_hasher = PasswordHasher(rounds=4)
settings = get_settings()
token_service = TokenService(secret_key=settings.jwt_secret_key)

TEST_PASSWORD = "testpassword123"

# Database URL for testing (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        yield session
        await session.rollback()


async def create_user(
    db: AsyncSession,
    email: str,
    tier: str = "starter",
    name: str = "Test User",
    **fields,
) -> User:
    user = User(
        id=str(uuid4()),
        email=email,
        name=name,
        password_hash=password_hasher.hash(TEST_PASSWORD),
        status="active",
        subscription_tier=tier,
        **fields,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def headers_for(user: User) -> dict:
    access_token = token_service.create_access_token(user_id=user.id, email=user.email)
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture
async def starter_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, "starter@reciperank.io", "starter", "Starter Cook")


@pytest.fixture
async def pro_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, "pro@reciperank.io", "pro", "Pro Cook")


@pytest.fixture
async def agency_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, "agency@reciperank.io", "agency", "Agency Owner")


@pytest.fixture
def test_user(starter_user: User) -> User:
    """Default authenticated user (starter tier)."""
    return starter_user


@pytest.fixture
def auth_headers(starter_user: User) -> dict:
    """Generate authentication headers for the starter user."""
    return headers_for(starter_user)


@pytest.fixture
def pro_auth_headers(pro_user: User) -> dict:
    return headers_for(pro_user)


@pytest.fixture
def agency_auth_headers(agency_user: User) -> dict:
    return headers_for(agency_user)


@pytest.fixture
def make_auth_headers():
    """Build Bearer headers for any user: ``make_auth_headers(user)``."""
    return headers_for


@pytest.fixture
async def agency_team(db_session: AsyncSession, agency_user: User) -> dict:
    """
    An agency organization with one member per role.

    Returns a dict with the organization, the users keyed by role name and
    the membership rows keyed by role name.
    """
    organization = Organization(
        id=str(uuid4()),
        name="Agency Owner Organization",
        slug=f"org-{agency_user.id}",
        owner_id=agency_user.id,
    )
    db_session.add(organization)
    await db_session.flush()

    users = {"OWNER": agency_user}
    for role in ("ADMIN", "MEMBER", "VIEWER"):
        users[role] = await create_user(
            db_session, f"{role.lower()}@reciperank.io", "starter", f"{role.title()} Member"
        )

    members = {}
    for role, user in users.items():
        member = TeamMember(
            id=str(uuid4()),
            organization_id=organization.id,
            user_id=user.id,
            role=TeamRole(role).value,
            joined_at=utc_now(),
        )
        db_session.add(member)
        members[role] = member
    await db_session.commit()

    return {"organization": organization, "users": users, "members": members}


@pytest.fixture
async def async_client(db_session: AsyncSession, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    # Import app here so the path setup above is in effect
    from main import app
    from adapters.ai.anthropic_adapter import AnthropicRecipeSEOService

    # Analyses use the deterministic generator unless a test swaps in a mock
    monkeypatch.setattr(
        "api.routes.analyses.recipe_seo_service", AnthropicRecipeSEOService(api_key="")
    )

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    # Reset rate limiter state between tests to prevent cross-test 429s
    if hasattr(app.state, "limiter"):
        app.state.limiter.reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Create extra accounts: ``await user_factory(email, tier)``."""

    async def _create(email: str, tier: str = "starter", **fields) -> User:
        return await create_user(db_session, email, tier, **fields)

    return _create

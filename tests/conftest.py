import uuid
from datetime import date

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from esg_hub.core.security import create_access_token, hash_password
from esg_hub.main import app
from esg_hub.core import models
from esg_hub.core.database import Base, get_db
from esg_hub.core.assistant.cache import cache

# Every test gets its own in-memory database
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture(scope="function")
async def db_session():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


# The cache is process wide, so start every test empty
@pytest_asyncio.fixture(scope="function", autouse=True)
async def clear_cache():
    cache.clear()
    yield
    cache.clear()


# Client
@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# Company
@pytest_asyncio.fixture(scope="function")
async def test_company(db_session: AsyncSession):
    company = models.Company(name=f"Acme {uuid.uuid4().hex[:6]}", sector="Manufacturing")
    db_session.add(company)
    await db_session.commit()
    await db_session.refresh(company)
    return company


@pytest_asyncio.fixture(scope="function")
async def other_company(db_session: AsyncSession):
    company = models.Company(name="Other Co", sector="Retail")
    db_session.add(company)
    await db_session.commit()
    await db_session.refresh(company)
    return company


# User
@pytest_asyncio.fixture(scope="function")
async def test_user(db_session: AsyncSession, test_company):
    # Generate unique email for each test to avoid duplicates
    unique_email = f"test_{uuid.uuid4().hex[:8]}@gmail.com"

    user = models.User(
        email=unique_email,
        password=hash_password("password123"),
        role="user",
        company_id=test_company.id,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


# Admin
@pytest_asyncio.fixture(scope="function")
async def test_admin(db_session: AsyncSession, test_company):
    unique_email = f"admin_{uuid.uuid4().hex[:8]}@gmail.com"

    user = models.User(
        email=unique_email,
        password=hash_password("password123"),
        role="admin",
        company_id=test_company.id,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


# Token for user
@pytest_asyncio.fixture(scope="function")
async def auth_headers_user(test_user):
    token = create_access_token({"user_id": test_user.id})
    return {"Authorization": f"Bearer {token}"}


# Token for admin
@pytest_asyncio.fixture(scope="function")
async def auth_headers_admin(test_admin):
    token = create_access_token({"user_id": test_admin.id})
    return {"Authorization": f"Bearer {token}"}


# Goal
@pytest_asyncio.fixture(scope="function")
async def test_goal(db_session: AsyncSession, test_company):
    goal = models.Goal(
        company_id=test_company.id,
        goal_name="Cut scope 2 emissions",
        category="environmental",
        baseline_value=100,
        target_value=50,
        current_value=100,
        progress_percentage=0,
        start_date=date(2026, 1, 1),
        target_date=date(2027, 12, 31),
        status="active",
    )
    db_session.add(goal)
    await db_session.commit()
    await db_session.refresh(goal)
    return goal

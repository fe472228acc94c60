from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from esg_hub.core.config import settings

# SQL echo only in development
engine = create_async_engine(settings.DATABASE_URL, echo=settings.is_development)

# Objects stay readable after commit; executors return them after committing
AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """One session per request, shared by the route and any tool it dispatches."""
    async with AsyncSessionLocal() as session:
        yield session

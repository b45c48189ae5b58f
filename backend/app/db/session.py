"""
Database session configuration.

Async SQLAlchemy engine and session factory for the ledger database.
Sessions never commit on their own: ledger services own the single
commit of each unit of work.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from backend.app.core.config import settings


def build_engine(url: str = None):
    """Create the async engine; pool sizing only applies to server databases."""
    url = url or settings.database_url
    options = {"echo": settings.db_echo, "future": True}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return create_async_engine(url, **options)


engine = build_engine()

# Objects stay readable after commit; responses are built from them
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Create declarative base for models
Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    Anything left uncommitted when the request ends is rolled back, so a
    failed or cancelled recalculation never leaves a half-written ledger.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise

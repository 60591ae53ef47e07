"""Async SQLAlchemy engine and session management."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from hrms.config import settings

# Async engine for FastAPI
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.ENVIRONMENT == "development",
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,
)

# Async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


async def get_db() -> AsyncSession:
    """FastAPI dependency: yield an async database session.

    Audit events queued on the session are only published once the
    transaction has committed.
    """
    from hrms.common.audit import audit_sink

    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
            audit_sink.publish_pending(session)
        except Exception:
            await session.rollback()
            audit_sink.discard_pending(session)
            raise
        finally:
            await session.close()

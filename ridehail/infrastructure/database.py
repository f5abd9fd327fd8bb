"""
Async SQLAlchemy engine, session factory and declarative base.

The ledger opens one short session per unit of work, so the pool is sized
for many small concurrent transactions (``DATABASE_POOL_SIZE`` plus
``DATABASE_MAX_OVERFLOW``).  ``pool_pre_ping`` drops connections the
server closed while idle instead of failing the next command.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from ridehail.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def dispose_engine() -> None:
    await engine.dispose()

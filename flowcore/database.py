from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from flowcore.config import settings

class Base(DeclarativeBase):
    pass

def create_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    return create_async_engine(
        database_url or settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO if echo is None else echo,
    )

def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

async def init_models(engine: AsyncEngine) -> None:
    """Create all tables registered on ``Base``."""
    # Register mapped classes before create_all
    import flowcore.models.workflow  # noqa: F401
    import flowcore.models.execution  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

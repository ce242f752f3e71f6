from typing import AsyncIterator
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from .config import settings
from .base import Base

engine = create_async_engine(settings.DATABASE_URL, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def init_models():
    # Dev/test only; deployed schemas are owned by migrations.
    if settings.ENV in ("local", "test"):
        import app.models  # noqa: F401  registers every table on Base.metadata
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session

def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return SessionLocal

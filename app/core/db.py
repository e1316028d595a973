import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from .config import settings
from .base import Base

log = logging.getLogger("db")

engine = create_async_engine(settings.DATABASE_DSN, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """One atomic unit of work: commit on success, roll back and re-raise otherwise."""
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        log.debug("Transaction rolled back", exc_info=True)
        raise

async def init_models():
    ## In dev-only "create_all" mode, build tables directly; otherwise, migrations own the schema.
    if settings.DB_MANAGE.lower() == "create_all":
        # model modules must be imported so their tables register on Base.metadata
        from app.modules.media import models as _media_models  # noqa: F401
        from app.modules.audit import models as _audit_models  # noqa: F401
        from app.modules.collections import models as _collection_models  # noqa: F401
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

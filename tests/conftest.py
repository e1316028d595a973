import os
import itertools
from datetime import datetime, timedelta, timezone

os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_DSN", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SEARCH_INDEX_PROVIDER", "logging")

import pytest
from fastapi import Depends
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.base import Base
from app.modules.media import models as _media_models  # noqa: F401
from app.modules.audit import models as _audit_models  # noqa: F401
from app.modules.collections import models as _collection_models  # noqa: F401
from app.modules.collections.service import CollectionService
from app.modules.media.service import MediaService

T0 = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = T0):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kw) -> None:
        self.current = self.current + timedelta(**kw)


class SequentialIds:
    def __init__(self, prefix: str = "m"):
        self.prefix = prefix
        self._n = itertools.count(1)

    def new_id(self) -> str:
        return f"{self.prefix}-{next(self._n):04d}"


class RecordingIndex:
    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.fail = False

    async def upsert(self, entity_id: str) -> None:
        if self.fail:
            raise RuntimeError("index unavailable")
        self.calls.append(("upsert", entity_id))

    async def delete(self, entity_id: str) -> None:
        if self.fail:
            raise RuntimeError("index unavailable")
        self.calls.append(("delete", entity_id))


async def _make_engine(dsn: str, **kw):
    engine = create_async_engine(dsn, **kw)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


@pytest.fixture
async def engine():
    eng = await _make_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield eng
    await eng.dispose()


@pytest.fixture
async def file_engine(tmp_path):
    # separate connections per session, for tests that interleave two writers
    eng = await _make_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def ids():
    return SequentialIds()


@pytest.fixture
def index():
    return RecordingIndex()


@pytest.fixture
def service(session, index, clock, ids):
    return MediaService(session, index=index, clock=clock, ids=ids)


@pytest.fixture
def collections(session, clock, ids):
    return CollectionService(session, clock=clock, ids=SequentialIds("c"))


@pytest.fixture
async def client(session_factory, index, clock, ids):
    from app.main import app
    from app.modules.collections import router as collections_router
    from app.modules.media import router as media_router

    async def _session():
        async with session_factory() as s:
            yield s

    def media_svc(session: AsyncSession = Depends(_session)) -> MediaService:
        return MediaService(session, index=index, clock=clock, ids=ids)

    def collection_svc(session: AsyncSession = Depends(_session)) -> CollectionService:
        return CollectionService(session, clock=clock, ids=SequentialIds("c"))

    app.dependency_overrides[media_router.svc] = media_svc
    app.dependency_overrides[collections_router.svc] = collection_svc
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_item(service):
    async def _make(**fields):
        payload = {"owner_user_id": "42", "media_type": "audio", "title": "Untitled"}
        payload.update(fields)
        return await service.handle_add_media_item(payload, actor_user_id="u-1")
    return _make

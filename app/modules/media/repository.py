from typing import Any, Iterable
from sqlalchemy import select, delete, func, and_, or_, true
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.paging import decode_cursor, page, parse_cursor_date
from app.core.errors import ValidationError
from app.modules.media.models import MediaItem, MediaTag, MediaCoPerformer, MediaReminder

# Listing order everywhere: newest first by publish (or entry) date, ties by id.
SORT_DATE = func.coalesce(MediaItem.publish_date, MediaItem.entry_date)

def _cursor_key(item: MediaItem) -> dict:
    return {"d": (item.publish_date or item.entry_date).isoformat(), "id": item.media_id}

def _like(q: str) -> str:
    escaped = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"

def snapshot(item: MediaItem) -> dict[str, Any]:
    return {c.key: getattr(item, c.key) for c in MediaItem.__table__.columns}

class MediaRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, media_id: str, *, include_deleted: bool = False, for_update: bool = False) -> MediaItem | None:
        q = select(MediaItem).where(MediaItem.media_id == media_id)
        if not include_deleted:
            q = q.where(MediaItem.is_deleted.is_(False))
        if for_update:
            q = q.with_for_update()
        # always reload: another transaction may have bumped the row since it was last seen
        q = q.execution_options(populate_existing=True)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def current_version(self, media_id: str) -> int | None:
        res = await self.session.execute(select(MediaItem.version).where(MediaItem.media_id == media_id))
        return res.scalar_one_or_none()

    async def create(self, **fields) -> MediaItem:
        obj = MediaItem(**fields)
        self.session.add(obj)
        await self.session.flush()
        return obj

    # ---- Tags ----
    async def list_tags(self, media_id: str) -> list[str]:
        res = await self.session.execute(
            select(MediaTag.tag).where(MediaTag.media_id == media_id).order_by(MediaTag.tag)
        )
        return list(res.scalars().all())

    async def delete_tags(self, media_id: str, tags: Iterable[str] | None = None) -> None:
        q = delete(MediaTag).where(MediaTag.media_id == media_id)
        if tags is not None:
            q = q.where(MediaTag.tag.in_(list(tags)))
        await self.session.execute(q)

    async def insert_tags(self, media_id: str, tags: Iterable[str]) -> None:
        existing = set(await self.list_tags(media_id))
        for tag in tags:
            if tag in existing:
                continue
            self.session.add(MediaTag(media_id=media_id, tag=tag))
            existing.add(tag)
        await self.session.flush()

    async def replace_tags(self, media_id: str, tags: list[str]) -> None:
        await self.delete_tags(media_id)
        await self.insert_tags(media_id, tags)

    # ---- Co-performers ----
    async def list_coperformers(self, media_id: str) -> list[str]:
        res = await self.session.execute(
            select(MediaCoPerformer.performer_id)
            .where(MediaCoPerformer.media_id == media_id)
            .order_by(MediaCoPerformer.performer_id)
        )
        return list(res.scalars().all())

    async def delete_coperformers(self, media_id: str) -> None:
        await self.session.execute(delete(MediaCoPerformer).where(MediaCoPerformer.media_id == media_id))

    async def insert_coperformers(self, media_id: str, performer_ids: Iterable[str]) -> None:
        for pid in dict.fromkeys(performer_ids):
            self.session.add(MediaCoPerformer(media_id=media_id, performer_id=pid))
        await self.session.flush()

    async def replace_coperformers(self, media_id: str, performer_ids: list[str]) -> None:
        await self.delete_coperformers(media_id)
        await self.insert_coperformers(media_id, performer_ids)

    # ---- Purge ----
    async def delete_children(self, media_id: str) -> None:
        await self.delete_tags(media_id)
        await self.delete_coperformers(media_id)
        await self.session.execute(delete(MediaReminder).where(MediaReminder.media_id == media_id))

    async def delete_row(self, media_id: str) -> None:
        # bulk DELETE carries no version predicate; hard delete is unconditional
        await self.session.execute(delete(MediaItem).where(MediaItem.media_id == media_id))

    # ---- Listing ----
    async def list_items(self, *clauses, filters: dict[str, Any] | None = None,
                         limit: int, cursor: str | None = None) -> tuple[list[MediaItem], str | None]:
        q = select(MediaItem).where(MediaItem.is_deleted.is_(False), *clauses, *self._filter_clauses(filters or {}))
        c = decode_cursor(cursor)
        if c is not None:
            d = parse_cursor_date(c.get("d"))
            last_id = c.get("id")
            if d is None or not isinstance(last_id, str):
                raise ValidationError("Malformed cursor", field="cursor")
            q = q.where(or_(SORT_DATE < d, and_(SORT_DATE == d, MediaItem.media_id < last_id)))
        q = q.order_by(SORT_DATE.desc(), MediaItem.media_id.desc()).limit(limit + 1)
        res = await self.session.execute(q)
        return page(res.scalars().all(), limit, _cursor_key)

    @staticmethod
    def has_tag(tag: str):
        return select(MediaTag.id).where(MediaTag.media_id == MediaItem.media_id, MediaTag.tag == tag).exists()

    @staticmethod
    def matches_text(query: str | None):
        if not query:
            return true()
        pattern = _like(query)
        return or_(MediaItem.title.ilike(pattern, escape="\\"), MediaItem.description.ilike(pattern, escape="\\"))

    def _filter_clauses(self, f: dict[str, Any]) -> list:
        out = []
        if f.get("media_type"):
            out.append(MediaItem.media_type == f["media_type"])
        if f.get("status"):
            out.append(MediaItem.status == f["status"])
        if f.get("min_duration") is not None:
            out.append(func.coalesce(MediaItem.duration_seconds, 0) >= f["min_duration"])
        if f.get("max_duration") is not None:
            out.append(func.coalesce(MediaItem.duration_seconds, 0) <= f["max_duration"])
        for t in f.get("tags_all") or []:
            out.append(self.has_tag(t))
        if f.get("from_date") is not None:
            out.append(SORT_DATE >= f["from_date"])
        if f.get("to_date") is not None:
            out.append(SORT_DATE <= f["to_date"])
        return out

from sqlalchemy import select, delete, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.errors import ValidationError
from app.core.paging import decode_cursor, page
from app.modules.collections.models import Collection, CollectionMedia
from app.modules.media.models import MediaItem

class CollectionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, collection_id: str) -> Collection | None:
        return await self.session.get(Collection, collection_id)

    async def create(self, **fields) -> Collection:
        obj = Collection(**fields)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get_member(self, collection_id: str, media_id: str) -> CollectionMedia | None:
        q = select(CollectionMedia).where(
            CollectionMedia.collection_id == collection_id,
            CollectionMedia.media_id == media_id,
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def upsert_member(self, collection_id: str, media_id: str, position: int) -> CollectionMedia:
        obj = await self.get_member(collection_id, media_id)
        if obj is None:
            obj = CollectionMedia(collection_id=collection_id, media_id=media_id, position=position)
            self.session.add(obj)
        else:
            obj.position = position
        await self.session.flush()
        return obj

    async def remove_member(self, collection_id: str, media_id: str) -> bool:
        res = await self.session.execute(
            delete(CollectionMedia).where(
                CollectionMedia.collection_id == collection_id,
                CollectionMedia.media_id == media_id,
            )
        )
        return bool(res.rowcount)

    async def delete_memberships(self, media_id: str) -> None:
        await self.session.execute(delete(CollectionMedia).where(CollectionMedia.media_id == media_id))

    async def list_members(self, collection_id: str, *, limit: int, cursor: str | None = None):
        """Live members ordered by position desc, media_id desc; returns ``[(item, position)], next_cursor``."""
        q = (
            select(MediaItem, CollectionMedia.position)
            .join(CollectionMedia, CollectionMedia.media_id == MediaItem.media_id)
            .where(CollectionMedia.collection_id == collection_id, MediaItem.is_deleted.is_(False))
        )
        c = decode_cursor(cursor)
        if c is not None:
            p, last_id = c.get("p"), c.get("id")
            if not isinstance(p, int) or not isinstance(last_id, str):
                raise ValidationError("Malformed cursor", field="cursor")
            q = q.where(or_(
                CollectionMedia.position < p,
                and_(CollectionMedia.position == p, MediaItem.media_id < last_id),
            ))
        q = q.order_by(CollectionMedia.position.desc(), MediaItem.media_id.desc()).limit(limit + 1)
        res = await self.session.execute(q)
        rows = [(item, position) for item, position in res.all()]
        return page(rows, limit, lambda r: {"p": r[1], "id": r[0].media_id})

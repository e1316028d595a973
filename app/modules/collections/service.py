import logging
from typing import Any, Mapping
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import settings
from app.core.db import transaction
from app.core.errors import NotFoundError, ValidationError
from app.core.paging import clamp_limit
from app.platform.ports.clock import ClockPort
from app.platform.ports.identifiers import IdentifierPort
from app.modules.audit.service import AuditRecorder
from app.modules.collections.repository import CollectionRepository
from app.modules.collections.schemas import CollectionItemOut, CollectionOut, CollectionPageOut, MembershipOut
from app.modules.media.constants import AuditAction, Visibility
from app.modules.media.fields import sanitize
from app.modules.media.repository import MediaRepository
from app.modules.media.schemas import MediaItemOut

log = logging.getLogger("collections.service")

class CollectionService:
    def __init__(self, session: AsyncSession, *, clock: ClockPort, ids: IdentifierPort):
        self.session = session
        self.clock = clock
        self.ids = ids
        self.repo = CollectionRepository(session)
        self.media = MediaRepository(session)
        self.audit = AuditRecorder(session)

    async def _require_collection(self, collection_id: str):
        obj = await self.repo.get(collection_id)
        if obj is None:
            raise NotFoundError("collection", collection_id)
        return obj

    async def create_collection(self, payload: Mapping[str, Any], *, actor_user_id: str | None = None) -> CollectionOut:
        clean = sanitize(payload, "create_collection")
        if not clean["title"]:
            raise ValidationError("title must be a non-empty string", field="title")
        log.info(f"create_collection:start owner={clean['owner_user_id']} actor={actor_user_id}")
        collection_id = self.ids.new_id()
        async with transaction(self.session):
            now = self.clock.now()
            obj = await self.repo.create(
                collection_id=collection_id,
                owner_user_id=clean["owner_user_id"],
                title=clean["title"],
                description=clean.get("description") or None,
                visibility=clean.get("visibility") or Visibility.PRIVATE.value,
                poster_url=clean.get("poster_url"),
                created_at=now,
            )
            await self.audit.record(
                collection_id,
                action=AuditAction.COLLECTION_CREATE,
                actor_user_id=actor_user_id,
                occurred_at=now,
                after={"collection_id": collection_id, "title": obj.title},
            )
        log.info(f"create_collection:end collection_id={collection_id}")
        return CollectionOut.model_validate(obj)

    async def add_to_collection(self, payload: Mapping[str, Any], *, actor_user_id: str | None = None) -> MembershipOut:
        clean = sanitize(payload, "add_to_collection")
        collection_id, media_id = clean["collection_id"], clean["media_id"]
        position = clean.get("position") or 0
        log.info(f"add_to_collection:start collection_id={collection_id} media_id={media_id} actor={actor_user_id}")
        async with transaction(self.session):
            await self._require_collection(collection_id)
            if await self.media.get(media_id) is None:
                raise NotFoundError("media", media_id)
            await self.repo.upsert_member(collection_id, media_id, position)
            await self.audit.record(
                media_id,
                action=AuditAction.COLLECTION_ADD,
                actor_user_id=actor_user_id,
                occurred_at=self.clock.now(),
                after={"collection_id": collection_id, "position": position},
            )
        log.info(f"add_to_collection:end collection_id={collection_id} media_id={media_id}")
        return MembershipOut(collection_id=collection_id, media_id=media_id, position=position)

    async def remove_from_collection(self, payload: Mapping[str, Any], *, actor_user_id: str | None = None) -> MembershipOut:
        clean = sanitize(payload, "remove_from_collection")
        collection_id, media_id = clean["collection_id"], clean["media_id"]
        log.info(f"remove_from_collection:start collection_id={collection_id} media_id={media_id} actor={actor_user_id}")
        async with transaction(self.session):
            await self._require_collection(collection_id)
            removed = await self.repo.remove_member(collection_id, media_id)
            await self.audit.record(
                media_id,
                action=AuditAction.COLLECTION_REMOVE,
                actor_user_id=actor_user_id,
                occurred_at=self.clock.now(),
                after={"collection_id": collection_id, "removed": removed},
            )
        log.info(f"remove_from_collection:end collection_id={collection_id} media_id={media_id} removed={removed}")
        return MembershipOut(collection_id=collection_id, media_id=media_id, removed=removed)

    async def list_collection(self, payload: Mapping[str, Any]) -> CollectionPageOut:
        clean = sanitize(payload, "list_collection")
        collection_id = clean["collection_id"]
        await self._require_collection(collection_id)
        limit = clamp_limit(clean.get("limit"), settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        rows, next_cursor = await self.repo.list_members(collection_id, limit=limit, cursor=clean.get("cursor") or None)
        items = [
            CollectionItemOut(**MediaItemOut.model_validate(item).model_dump(), position=position)
            for item, position in rows
        ]
        log.info(f"list_collection:end collection_id={collection_id} count={len(items)}")
        return CollectionPageOut(items=items, next_cursor=next_cursor)

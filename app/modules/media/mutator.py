"""The read-modify-write cycle shared by every media write.

One call to :meth:`MediaMutator.mutate` is one transaction: load the live row,
check the version token, let the operation apply its change, bump the version,
write the audit row, commit. The search-index projection runs only after the
commit and can never undo it.
"""
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Literal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from app.core.db import transaction
from app.core.errors import ConflictError, NotFoundError
from app.platform.ports.clock import ClockPort
from app.platform.ports.search_index import SearchIndexPort
from app.modules.audit.service import AuditRecorder
from app.modules.collections.repository import CollectionRepository
from app.modules.media.constants import AuditAction, MediaStatus
from app.modules.media.guard import expect_version
from app.modules.media.models import MediaItem
from app.modules.media.repository import MediaRepository, snapshot
from app.modules.media.schemas import MutationOut

log = logging.getLogger("media.mutator")

# Receives the locked row and the transaction's "now"; mutates the row (and/or
# its children) and returns the semantic delta recorded as the audit after-state.
Apply = Callable[[MediaItem, datetime], Awaitable[dict[str, Any]]]
IndexOp = Literal["upsert", "delete"]

class MediaMutator:
    def __init__(self, session: AsyncSession, *, index: SearchIndexPort, clock: ClockPort):
        self.session = session
        self.index = index
        self.clock = clock
        self.repo = MediaRepository(session)
        self.audit = AuditRecorder(session)
        self.collections = CollectionRepository(session)

    async def create(self, media_id: str, fields: dict[str, Any], *,
                     tags: list[str], coperformers: list[str],
                     actor_user_id: str | None) -> MutationOut:
        async with transaction(self.session):
            now = self.clock.now()
            row = await self.repo.create(
                media_id=media_id,
                version=1,
                status=MediaStatus.DRAFT.value,
                entry_date=now,
                last_updated=now,
                created_by_user_id=actor_user_id,
                updated_by_user_id=actor_user_id,
                is_deleted=False,
                **fields,
            )
            if tags:
                await self.repo.insert_tags(media_id, tags)
            if coperformers:
                await self.repo.insert_coperformers(media_id, coperformers)
            await self.audit.record(
                media_id,
                action=AuditAction.ADD,
                actor_user_id=actor_user_id,
                occurred_at=now,
                before=None,
                after={"version": 1, "media_type": row.media_type, "tags": tags, "coperformers": coperformers},
            )
            out = MutationOut(media_id=media_id, version=row.version, status=row.status)
        out.indexed = await self.project("upsert", media_id)
        return out

    async def mutate(self, media_id: str, expected_version: int | None, *,
                     action: AuditAction, actor_user_id: str | None,
                     apply: Apply, index_op: IndexOp = "upsert") -> MutationOut:
        try:
            out = await self._mutate(media_id, expected_version, action=action,
                                     actor_user_id=actor_user_id, apply=apply)
        except StaleDataError as e:
            # another transaction committed between our read and this write
            async with transaction(self.session):
                actual = await self.repo.current_version(media_id)
            raise ConflictError(media_id, expected_version, actual) from e
        out.indexed = await self.project(index_op, media_id)
        return out

    async def _mutate(self, media_id: str, expected_version: int | None, *,
                      action: AuditAction, actor_user_id: str | None, apply: Apply) -> MutationOut:
        async with transaction(self.session):
            row = await self.repo.get(media_id, for_update=True)
            if row is None:
                raise NotFoundError("media", media_id)
            new_version = expect_version(media_id, row.version, expected_version)

            now = self.clock.now()
            prior = snapshot(row)
            delta = await apply(row, now)

            row.version = new_version
            row.last_updated = now
            row.updated_by_user_id = actor_user_id or row.updated_by_user_id
            await self.session.flush()

            before = {"version": prior["version"]}
            before.update({k: prior[k] for k in delta if k in prior})
            await self.audit.record(
                media_id,
                action=action,
                actor_user_id=actor_user_id,
                occurred_at=now,
                before=before,
                after={**delta, "version": new_version},
            )
            out = MutationOut(media_id=media_id, version=new_version, status=row.status, publish_date=row.publish_date)
        return out

    async def purge(self, media_id: str, *, actor_user_id: str | None) -> MutationOut:
        """Remove the row and every dependent, regardless of version or soft-delete state."""
        async with transaction(self.session):
            row = await self.repo.get(media_id, include_deleted=True, for_update=True)
            if row is None:
                raise NotFoundError("media", media_id)
            last_version = row.version
            await self.repo.delete_children(media_id)
            audit_rows = await self.audit.purge(media_id)
            await self.collections.delete_memberships(media_id)
            await self.repo.delete_row(media_id)
        # the audit trail is gone with the entity; the log is the only record of the purge
        log.warning(
            f"hard_delete media_id={media_id} last_version={last_version} "
            f"audit_rows_removed={audit_rows} actor={actor_user_id}"
        )
        indexed = await self.project("delete", media_id)
        return MutationOut(media_id=media_id, version=last_version, purged=True, indexed=indexed)

    async def project(self, op: IndexOp, media_id: str) -> bool:
        """Best-effort projection; failures are logged and reported, never raised."""
        try:
            if op == "delete":
                await self.index.delete(media_id)
            else:
                await self.index.upsert(media_id)
        except Exception:
            log.error(f"index {op} failed media_id={media_id}", exc_info=True)
            return False
        return True

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Mapping
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import settings
from app.core.errors import NotFoundError, StateTransitionError, ValidationError
from app.core.paging import clamp_limit
from app.platform.ports.clock import ClockPort
from app.platform.ports.identifiers import IdentifierPort
from app.platform.ports.search_index import SearchIndexPort
from app.modules.audit.service import AuditRecorder
from app.modules.media import rules
from app.modules.media.constants import (
    AuditAction, MediaStatus, Visibility, LISTED_VISIBILITIES, can_transition,
)
from app.modules.media.fields import sanitize, sanitize_filters
from app.modules.media.models import MediaItem
from app.modules.media.mutator import MediaMutator
from app.modules.media.repository import MediaRepository, snapshot
from app.modules.media.schemas import AuditOut, MediaItemOut, MediaPageOut, MutationOut, ReindexOut

log = logging.getLogger("media.service")

METADATA_FIELDS = (
    "title", "description", "visibility", "featured", "coming_soon",
    "image_variants_json", "gallery_poster_url", "media_meta",
)
ASSET_FIELDS = (
    "asset_url", "file_extension", "file_name", "file_size_bytes",
    "duration_seconds", "video_width", "video_height", "pending_conversion",
)
BLUR_FIELDS = (
    "placeholder_lock", "blurred_lock", "blurred_value_px",
    "trailer_blurred_lock", "trailer_blurred_value_px",
)
CREATE_FIELDS = METADATA_FIELDS + ASSET_FIELDS + ("poster_url",) + BLUR_FIELDS

# Columns where a null after coercion means "invalid input" rather than "clear".
_NOT_NULLABLE = {
    "visibility", "featured", "coming_soon", "pending_conversion",
    "placeholder_lock", "blurred_lock", "blurred_value_px",
    "trailer_blurred_lock", "trailer_blurred_value_px",
}
# Status targets reachable through set_status; gated and terminal moves have their own operations.
_PLAIN_STATUS_TARGETS = {MediaStatus.PENDING_REVIEW.value, MediaStatus.ARCHIVED.value}
# Lifecycle fields have their own gated operations and are refused by the update dispatcher.
_LIFECYCLE_FIELDS = ("status", "publish_date")

Payload = Mapping[str, Any]

def _pick(clean: dict[str, Any], keys: tuple[str, ...]) -> dict[str, Any]:
    out = {}
    for k in keys:
        if k not in clean:
            continue
        if clean[k] is None and k in _NOT_NULLABLE:
            continue
        out[k] = clean[k]
    return out

def _assign(fields: dict[str, Any]):
    async def apply(row: MediaItem, now: datetime) -> dict[str, Any]:
        for k, v in fields.items():
            setattr(row, k, v)
        return dict(fields)
    return apply

class MediaService:
    def __init__(self, session: AsyncSession, *, index: SearchIndexPort, clock: ClockPort, ids: IdentifierPort):
        self.session = session
        self.clock = clock
        self.ids = ids
        self.repo = MediaRepository(session)
        self.audit = AuditRecorder(session)
        self.mutator = MediaMutator(session, index=index, clock=clock)

    async def _run(self, op: str, payload: Payload, actor_user_id: str | None,
                   fn: Callable[[dict[str, Any]], Awaitable[MutationOut]]) -> MutationOut:
        clean = sanitize(payload, op)
        log.info(f"{op}:start media_id={clean.get('media_id')} actor={actor_user_id}")
        out = await fn(clean)
        log.info(f"{op}:end media_id={out.media_id} version={out.version} indexed={out.indexed}")
        return out

    # ---- Dispatch handlers ----
    async def handle_add_media_item(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        clean = sanitize(payload, "handle_add_media_item")
        if clean.get("media_type") is None:
            raise ValidationError("Invalid media_type", field="media_type")
        log.info(f"handle_add_media_item:start owner={clean['owner_user_id']} type={clean['media_type']} actor={actor_user_id}")

        # nulls fall back to column defaults on insert
        fields = {k: v for k, v in _pick(clean, CREATE_FIELDS).items() if v is not None}
        fields["owner_user_id"] = clean.get("new_owner_user_id") or clean["owner_user_id"]
        fields["media_type"] = clean["media_type"]
        fields.setdefault("visibility", Visibility.PRIVATE.value)
        tags = clean.get("tags") or []
        coperformers = clean.get("coperformers") or clean.get("performer_ids") or []

        media_id = self.ids.new_id()
        out = await self.mutator.create(media_id, fields, tags=tags, coperformers=coperformers,
                                        actor_user_id=actor_user_id)
        log.info(f"handle_add_media_item:end media_id={media_id} version={out.version} indexed={out.indexed}")
        return out

    async def handle_update_media_item(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        """Route to the setters matching the supplied fields, threading the version token through each."""
        clean = sanitize(payload, "handle_update_media_item")
        media_id = clean["media_id"]
        for k in _LIFECYCLE_FIELDS:
            if k in clean:
                raise ValidationError(
                    f"{k} is not updatable here; use set_status, publish, schedule or cancel_schedule",
                    field=k,
                )
        log.info(f"handle_update_media_item:start media_id={media_id} actor={actor_user_id}")

        steps: list[tuple[str, Callable[[int], Awaitable[MutationOut]]]] = []
        new_owner = clean.get("new_owner_user_id") or clean.get("owner_user_id")
        if new_owner:
            steps.append(("set_ownership", lambda v: self._set_ownership(media_id, v, new_owner, actor_user_id)))
        if any(clean.get(k) is not None for k in ASSET_FIELDS):
            steps.append(("attach_primary_asset", lambda v: self._attach_primary_asset(media_id, v, clean, actor_user_id)))
        if clean.get("poster_url"):
            steps.append(("set_poster", lambda v: self._set_poster(media_id, v, clean["poster_url"], actor_user_id)))
        if _pick(clean, METADATA_FIELDS):
            steps.append(("update_metadata", lambda v: self._update_metadata(media_id, v, clean, actor_user_id)))
        if "tags" in clean:
            steps.append(("set_tags", lambda v: self._set_tags(media_id, v, clean["tags"], actor_user_id)))
        if "coperformers" in clean or "performer_ids" in clean:
            ids = clean.get("coperformers") or clean.get("performer_ids") or []
            steps.append(("set_coperformers", lambda v: self._set_coperformers(media_id, v, ids, actor_user_id)))
        if _pick(clean, BLUR_FIELDS):
            steps.append(("apply_blur_controls", lambda v: self._apply_blur_controls(media_id, v, clean, actor_user_id)))
        if clean.get("soft_delete") is True:
            steps.append(("soft_delete", lambda v: self._soft_delete(media_id, v, actor_user_id)))
        if clean.get("hard_delete") is True:
            steps.append(("hard_delete", lambda v: self.mutator.purge(media_id, actor_user_id=actor_user_id)))
        if not steps:
            raise ValidationError("No updatable fields supplied", media_id=media_id)

        version = clean["expected_version"]
        out: MutationOut | None = None
        applied: list[str] = []
        for name, step in steps:
            log.info(f"handle_update_media_item:branch:{name} media_id={media_id} version={version}")
            out = await step(version)
            applied.append(name)
            version = out.version
        out = out.model_copy(update={"applied": applied})
        log.info(f"handle_update_media_item:end media_id={media_id} version={out.version} applied={applied}")
        return out

    async def handle_schedule_media_item(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("handle_schedule_media_item", payload, actor_user_id,
                               lambda c: self._schedule(c["media_id"], c["expected_version"], c.get("publish_date"), actor_user_id))

    async def handle_publish_media_item(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("handle_publish_media_item", payload, actor_user_id,
                               lambda c: self._publish(c["media_id"], c["expected_version"], actor_user_id))

    # delegating aliases
    async def schedule_publish(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self.handle_schedule_media_item(payload, actor_user_id=actor_user_id)

    async def set_status_scheduled(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self.handle_schedule_media_item(payload, actor_user_id=actor_user_id)

    async def set_status_published(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self.handle_publish_media_item(payload, actor_user_id=actor_user_id)

    # ---- Setters ----
    async def update_metadata(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("update_metadata", payload, actor_user_id,
                               lambda c: self._update_metadata(c["media_id"], c.get("expected_version"), c, actor_user_id))

    async def attach_primary_asset(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("attach_primary_asset", payload, actor_user_id,
                               lambda c: self._attach_primary_asset(c["media_id"], c.get("expected_version"), c, actor_user_id))

    async def set_poster(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("set_poster", payload, actor_user_id,
                               lambda c: self._set_poster(c["media_id"], c.get("expected_version"), c.get("poster_url"), actor_user_id))

    async def apply_blur_controls(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("apply_blur_controls", payload, actor_user_id,
                               lambda c: self._apply_blur_controls(c["media_id"], c.get("expected_version"), c, actor_user_id))

    async def set_visibility(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("set_visibility", payload, actor_user_id,
                               lambda c: self._set_field(c["media_id"], c.get("expected_version"), "visibility",
                                                         c.get("visibility"), AuditAction.VISIBILITY, actor_user_id))

    async def set_featured(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("set_featured", payload, actor_user_id,
                               lambda c: self._set_field(c["media_id"], c.get("expected_version"), "featured",
                                                         c.get("featured"), AuditAction.FEATURED, actor_user_id))

    async def set_coming_soon(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("set_coming_soon", payload, actor_user_id,
                               lambda c: self._set_field(c["media_id"], c.get("expected_version"), "coming_soon",
                                                         c.get("coming_soon"), AuditAction.COMING_SOON, actor_user_id))

    async def set_tags(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("set_tags", payload, actor_user_id,
                               lambda c: self._set_tags(c["media_id"], c.get("expected_version"), c["tags"], actor_user_id))

    async def add_tag(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        async def run(c: dict[str, Any]) -> MutationOut:
            tag = c["tag"]

            async def apply(row: MediaItem, now: datetime) -> dict[str, Any]:
                await self.repo.insert_tags(row.media_id, [tag])
                return {"tag": tag}
            return await self.mutator.mutate(c["media_id"], c.get("expected_version"), action=AuditAction.TAG_ADD,
                                             actor_user_id=actor_user_id, apply=apply)
        return await self._run("add_tag", payload, actor_user_id, run)

    async def remove_tag(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        async def run(c: dict[str, Any]) -> MutationOut:
            tag = c["tag"]

            async def apply(row: MediaItem, now: datetime) -> dict[str, Any]:
                await self.repo.delete_tags(row.media_id, [tag])
                return {"removed": tag}
            return await self.mutator.mutate(c["media_id"], c.get("expected_version"), action=AuditAction.TAG_REMOVE,
                                             actor_user_id=actor_user_id, apply=apply)
        return await self._run("remove_tag", payload, actor_user_id, run)

    async def set_coperformers(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("set_coperformers", payload, actor_user_id,
                               lambda c: self._set_coperformers(c["media_id"], c.get("expected_version"),
                                                                c["performer_ids"], actor_user_id))

    async def set_ownership(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("set_ownership", payload, actor_user_id,
                               lambda c: self._set_ownership(c["media_id"], c.get("expected_version"),
                                                             c["new_owner_user_id"], actor_user_id))

    async def set_custom_meta(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        async def run(c: dict[str, Any]) -> MutationOut:
            meta = c.get("media_meta")
            if not isinstance(meta, dict):
                raise ValidationError("media_meta must be an object", field="media_meta")
            merge = bool(c.get("merge"))

            async def apply(row: MediaItem, now: datetime) -> dict[str, Any]:
                row.media_meta = {**(row.media_meta or {}), **meta} if merge else dict(meta)
                return {"media_meta": row.media_meta, "merge": merge}
            return await self.mutator.mutate(c["media_id"], c.get("expected_version"), action=AuditAction.CUSTOM_META,
                                             actor_user_id=actor_user_id, apply=apply)
        return await self._run("set_custom_meta", payload, actor_user_id, run)

    async def set_status(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        async def run(c: dict[str, Any]) -> MutationOut:
            target = c.get("status")
            if target not in _PLAIN_STATUS_TARGETS:
                raise ValidationError(
                    f"set_status accepts {sorted(_PLAIN_STATUS_TARGETS)}; use publish, schedule or delete operations",
                    field="status",
                )
            media_id = c["media_id"]

            async def apply(row: MediaItem, now: datetime) -> dict[str, Any]:
                # scheduled -> pending_review is reserved for cancel_schedule
                if row.status == MediaStatus.SCHEDULED.value or not can_transition(row.status, target):
                    raise StateTransitionError(media_id, row.status, target)
                row.status = target
                return {"status": target}
            return await self.mutator.mutate(media_id, c.get("expected_version"), action=AuditAction.STATUS_SET,
                                             actor_user_id=actor_user_id, apply=apply)
        return await self._run("set_status", payload, actor_user_id, run)

    async def cancel_schedule(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("cancel_schedule", payload, actor_user_id,
                               lambda c: self._cancel_schedule(c["media_id"], c.get("expected_version"), actor_user_id))

    async def soft_delete(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("soft_delete", payload, actor_user_id,
                               lambda c: self._soft_delete(c["media_id"], c.get("expected_version"), actor_user_id))

    async def hard_delete(self, payload: Payload, *, actor_user_id: str | None = None) -> MutationOut:
        return await self._run("hard_delete", payload, actor_user_id,
                               lambda c: self.mutator.purge(c["media_id"], actor_user_id=actor_user_id))

    # ---- Mutation bodies (shared by setters and the update dispatcher) ----
    async def _update_metadata(self, media_id: str, expected: int | None, clean: dict[str, Any],
                               actor_user_id: str | None) -> MutationOut:
        fields = _pick(clean, METADATA_FIELDS)
        if not fields:
            raise ValidationError("No metadata fields supplied", media_id=media_id)
        return await self.mutator.mutate(media_id, expected, action=AuditAction.UPDATE,
                                         actor_user_id=actor_user_id, apply=_assign(fields))

    async def _attach_primary_asset(self, media_id: str, expected: int | None, clean: dict[str, Any],
                                    actor_user_id: str | None) -> MutationOut:
        fields = _pick(clean, ASSET_FIELDS)
        if "asset_url" in fields and fields["asset_url"] is None:
            raise ValidationError("asset_url must be an https url", field="asset_url")
        if not fields:
            raise ValidationError("No asset fields supplied", media_id=media_id)
        return await self.mutator.mutate(media_id, expected, action=AuditAction.ASSET_ATTACH,
                                         actor_user_id=actor_user_id, apply=_assign(fields))

    async def _set_poster(self, media_id: str, expected: int | None, poster_url: str | None,
                          actor_user_id: str | None) -> MutationOut:
        if poster_url is None:
            raise ValidationError("poster_url must be an https url", field="poster_url")
        return await self.mutator.mutate(media_id, expected, action=AuditAction.POSTER_SET,
                                         actor_user_id=actor_user_id, apply=_assign({"poster_url": poster_url}))

    async def _apply_blur_controls(self, media_id: str, expected: int | None, clean: dict[str, Any],
                                   actor_user_id: str | None) -> MutationOut:
        fields = _pick(clean, BLUR_FIELDS)
        if not fields:
            raise ValidationError("No blur controls supplied", media_id=media_id)
        return await self.mutator.mutate(media_id, expected, action=AuditAction.BLUR_APPLY,
                                         actor_user_id=actor_user_id, apply=_assign(fields))

    async def _set_field(self, media_id: str, expected: int | None, field: str, value: Any,
                         action: AuditAction, actor_user_id: str | None) -> MutationOut:
        if value is None:
            raise ValidationError(f"Invalid {field}", field=field)
        return await self.mutator.mutate(media_id, expected, action=action,
                                         actor_user_id=actor_user_id, apply=_assign({field: value}))

    async def _set_tags(self, media_id: str, expected: int | None, tags: list[str],
                        actor_user_id: str | None) -> MutationOut:
        async def apply(row: MediaItem, now: datetime) -> dict[str, Any]:
            await self.repo.replace_tags(row.media_id, tags)
            return {"tags": tags}
        return await self.mutator.mutate(media_id, expected, action=AuditAction.TAGS_REPLACE,
                                         actor_user_id=actor_user_id, apply=apply)

    async def _set_coperformers(self, media_id: str, expected: int | None, performer_ids: list[str],
                                actor_user_id: str | None) -> MutationOut:
        async def apply(row: MediaItem, now: datetime) -> dict[str, Any]:
            await self.repo.replace_coperformers(row.media_id, performer_ids)
            return {"coperformers": performer_ids}
        return await self.mutator.mutate(media_id, expected, action=AuditAction.COPERFORMERS_REPLACE,
                                         actor_user_id=actor_user_id, apply=apply)

    async def _set_ownership(self, media_id: str, expected: int | None, new_owner: str,
                             actor_user_id: str | None) -> MutationOut:
        return await self.mutator.mutate(media_id, expected, action=AuditAction.OWNERSHIP,
                                         actor_user_id=actor_user_id, apply=_assign({"owner_user_id": new_owner}))

    async def _publish(self, media_id: str, expected: int | None, actor_user_id: str | None) -> MutationOut:
        async def apply(row: MediaItem, now: datetime) -> dict[str, Any]:
            target = MediaStatus.PUBLISHED.value
            if not can_transition(row.status, target):
                raise StateTransitionError(media_id, row.status, target)
            rules.evaluate(rules.PUBLISH, snapshot(row), now)
            row.publish_date = row.publish_date or now
            row.status = target
            return {"status": target, "publish_date": row.publish_date}
        return await self.mutator.mutate(media_id, expected, action=AuditAction.PUBLISH,
                                         actor_user_id=actor_user_id, apply=apply)

    async def _schedule(self, media_id: str, expected: int | None, publish_date: datetime | None,
                        actor_user_id: str | None) -> MutationOut:
        async def apply(row: MediaItem, now: datetime) -> dict[str, Any]:
            target = MediaStatus.SCHEDULED.value
            if not can_transition(row.status, target):
                raise StateTransitionError(media_id, row.status, target)
            rules.evaluate(rules.SCHEDULE, {**snapshot(row), "publish_date": publish_date}, now)
            row.publish_date = publish_date
            row.status = target
            return {"status": target, "publish_date": publish_date}
        return await self.mutator.mutate(media_id, expected, action=AuditAction.SCHEDULE,
                                         actor_user_id=actor_user_id, apply=apply)

    async def _cancel_schedule(self, media_id: str, expected: int | None, actor_user_id: str | None) -> MutationOut:
        async def apply(row: MediaItem, now: datetime) -> dict[str, Any]:
            target = MediaStatus.PENDING_REVIEW.value
            if row.status != MediaStatus.SCHEDULED.value:
                raise StateTransitionError(media_id, row.status, target)
            row.status = target
            return {"status": target}
        return await self.mutator.mutate(media_id, expected, action=AuditAction.CANCEL_SCHEDULE,
                                         actor_user_id=actor_user_id, apply=apply)

    async def _soft_delete(self, media_id: str, expected: int | None, actor_user_id: str | None) -> MutationOut:
        async def apply(row: MediaItem, now: datetime) -> dict[str, Any]:
            row.is_deleted = True
            row.status = MediaStatus.DELETED.value
            row.deleted_at = now
            return {"status": row.status, "is_deleted": True, "deleted_at": now}
        return await self.mutator.mutate(media_id, expected, action=AuditAction.SOFT_DELETE,
                                         actor_user_id=actor_user_id, apply=apply, index_op="delete")

    # ---- Reads ----
    async def get_by_id(self, payload: Payload) -> MediaItemOut:
        clean = sanitize(payload, "get_by_id")
        media_id = clean["media_id"]
        row = await self.repo.get(media_id)
        if row is None:
            raise NotFoundError("media", media_id)
        out = MediaItemOut.model_validate(row)
        if clean.get("include_tags"):
            out.tags = await self.repo.list_tags(media_id)
        if clean.get("include_coperformers"):
            out.coperformers = await self.repo.list_coperformers(media_id)
        return out

    async def _list(self, op: str, clean: dict[str, Any], *clauses) -> MediaPageOut:
        limit = clamp_limit(clean.get("limit"), settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        filters = sanitize_filters(clean.get("filters"))
        log.info(f"{op}:start limit={limit} filters={filters}")
        items, next_cursor = await self.repo.list_items(
            *clauses, filters=filters, limit=limit, cursor=clean.get("cursor") or None,
        )
        log.info(f"{op}:end count={len(items)}")
        return MediaPageOut(items=[MediaItemOut.model_validate(i) for i in items], next_cursor=next_cursor)

    async def list_by_owner(self, payload: Payload) -> MediaPageOut:
        clean = sanitize(payload, "list_by_owner")
        return await self._list("list_by_owner", clean, MediaItem.owner_user_id == clean["owner_user_id"])

    async def list_public(self, payload: Payload) -> MediaPageOut:
        clean = sanitize(payload, "list_public")
        return await self._list("list_public", clean,
                                MediaItem.status == MediaStatus.PUBLISHED.value,
                                MediaItem.visibility.in_(LISTED_VISIBILITIES))

    async def list_featured(self, payload: Payload) -> MediaPageOut:
        clean = sanitize(payload, "list_featured")
        return await self._list("list_featured", clean,
                                MediaItem.status == MediaStatus.PUBLISHED.value,
                                MediaItem.featured.is_(True))

    async def list_coming_soon(self, payload: Payload) -> MediaPageOut:
        clean = sanitize(payload, "list_coming_soon")
        return await self._list("list_coming_soon", clean, MediaItem.coming_soon.is_(True))

    async def list_by_tag(self, payload: Payload) -> MediaPageOut:
        clean = sanitize(payload, "list_by_tag")
        return await self._list("list_by_tag", clean, MediaRepository.has_tag(clean["tag"]))

    async def search(self, payload: Payload) -> MediaPageOut:
        clean = sanitize(payload, "search")
        return await self._list("search", clean,
                                MediaItem.status == MediaStatus.PUBLISHED.value,
                                MediaRepository.matches_text(clean.get("query")))

    async def list_audit(self, payload: Payload) -> list[AuditOut]:
        clean = sanitize(payload, "list_audit")
        rows = await self.audit.list_for(clean["media_id"])
        return [AuditOut.model_validate(r) for r in rows]

    async def reindex(self, payload: Payload) -> ReindexOut:
        clean = sanitize(payload, "reindex")
        media_id = clean["media_id"]
        if await self.repo.get(media_id) is None:
            raise NotFoundError("media", media_id)
        log.info(f"reindex:start media_id={media_id}")
        ok = await self.mutator.project("upsert", media_id)
        log.info(f"reindex:end media_id={media_id} reindexed={ok}")
        return ReindexOut(media_id=media_id, reindexed=ok)

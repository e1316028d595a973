import json
from typing import Any
from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.db import SessionLocal
from app.core.errors import ValidationError
from app.core.security import get_principal, require_scopes, Principal
from app.modules.media.schemas import AuditOut, MediaItemOut, MediaPageOut, MutationOut, ReindexOut
from app.modules.media.service import MediaService
from app.platform.provider_registry import registry

router = APIRouter()

WRITE = [Depends(require_scopes("media:write"))]
READ = [Depends(require_scopes("media:read"))]

async def get_session():
    async with SessionLocal() as session:
        yield session

def svc(session: AsyncSession = Depends(get_session)) -> MediaService:
    return MediaService(session, index=registry.search_index(), clock=registry.clock(), ids=registry.identifiers())

def _listing(limit: int | None, cursor: str | None, filters: str | None, **extra) -> dict[str, Any]:
    payload: dict[str, Any] = {k: v for k, v in extra.items() if v is not None}
    if limit is not None:
        payload["limit"] = limit
    if cursor:
        payload["cursor"] = cursor
    if filters:
        try:
            payload["filters"] = json.loads(filters)
        except ValueError:
            raise ValidationError("filters must be a JSON object", field="filters")
    return payload

# ---- Create / dispatch ----
@router.post("", response_model=MutationOut, status_code=status.HTTP_201_CREATED, dependencies=WRITE)
async def add_media_item(payload: dict = Body(...), principal: Principal = Depends(get_principal), service: MediaService = Depends(svc)):
    return await service.handle_add_media_item(payload, actor_user_id=principal.user_id)

# ---- Reads with static paths (registered before /{media_id}) ----
@router.get("/public", response_model=MediaPageOut, dependencies=READ)
async def list_public(limit: int | None = None, cursor: str | None = None, filters: str | None = None,
                      service: MediaService = Depends(svc)):
    return await service.list_public(_listing(limit, cursor, filters))

@router.get("/featured", response_model=MediaPageOut, dependencies=READ)
async def list_featured(limit: int | None = None, cursor: str | None = None, filters: str | None = None,
                        service: MediaService = Depends(svc)):
    return await service.list_featured(_listing(limit, cursor, filters))

@router.get("/coming-soon", response_model=MediaPageOut, dependencies=READ)
async def list_coming_soon(limit: int | None = None, cursor: str | None = None, filters: str | None = None,
                           service: MediaService = Depends(svc)):
    return await service.list_coming_soon(_listing(limit, cursor, filters))

@router.get("/search", response_model=MediaPageOut, dependencies=READ)
async def search(query: str | None = Query(None, max_length=500), limit: int | None = None, cursor: str | None = None,
                 filters: str | None = None, service: MediaService = Depends(svc)):
    return await service.search(_listing(limit, cursor, filters, query=query))

@router.get("/owner/{owner_user_id}", response_model=MediaPageOut, dependencies=READ)
async def list_by_owner(owner_user_id: str, limit: int | None = None, cursor: str | None = None,
                        filters: str | None = None, service: MediaService = Depends(svc)):
    return await service.list_by_owner(_listing(limit, cursor, filters, owner_user_id=owner_user_id))

@router.get("/tag/{tag}", response_model=MediaPageOut, dependencies=READ)
async def list_by_tag(tag: str, limit: int | None = None, cursor: str | None = None, filters: str | None = None,
                      service: MediaService = Depends(svc)):
    return await service.list_by_tag(_listing(limit, cursor, filters, tag=tag))

@router.get("/{media_id}", response_model=MediaItemOut, dependencies=READ)
async def get_media_item(media_id: str, include_tags: bool = False, include_coperformers: bool = False,
                         service: MediaService = Depends(svc)):
    return await service.get_by_id({
        "media_id": media_id,
        "include_tags": include_tags,
        "include_coperformers": include_coperformers,
    })

@router.get("/{media_id}/audit", response_model=list[AuditOut], dependencies=[Depends(require_scopes("audit:read"))])
async def list_audit(media_id: str, service: MediaService = Depends(svc)):
    return await service.list_audit({"media_id": media_id})

@router.post("/{media_id}/reindex", response_model=ReindexOut, dependencies=WRITE)
async def reindex(media_id: str, service: MediaService = Depends(svc)):
    return await service.reindex({"media_id": media_id})

# ---- Writes on one item ----
@router.patch("/{media_id}", response_model=MutationOut, dependencies=WRITE)
async def update_media_item(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                            service: MediaService = Depends(svc)):
    return await service.handle_update_media_item({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.post("/{media_id}/publish", response_model=MutationOut, dependencies=WRITE)
async def publish(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                  service: MediaService = Depends(svc)):
    return await service.handle_publish_media_item({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.post("/{media_id}/schedule", response_model=MutationOut, dependencies=WRITE)
async def schedule(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                   service: MediaService = Depends(svc)):
    return await service.handle_schedule_media_item({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.post("/{media_id}/cancel-schedule", response_model=MutationOut, dependencies=WRITE)
async def cancel_schedule(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                          service: MediaService = Depends(svc)):
    return await service.cancel_schedule({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.post("/{media_id}/status", response_model=MutationOut, dependencies=WRITE)
async def set_status(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                     service: MediaService = Depends(svc)):
    return await service.set_status({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.put("/{media_id}/metadata", response_model=MutationOut, dependencies=WRITE)
async def update_metadata(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                          service: MediaService = Depends(svc)):
    return await service.update_metadata({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.put("/{media_id}/asset", response_model=MutationOut, dependencies=WRITE)
async def attach_primary_asset(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                               service: MediaService = Depends(svc)):
    return await service.attach_primary_asset({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.put("/{media_id}/poster", response_model=MutationOut, dependencies=WRITE)
async def set_poster(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                     service: MediaService = Depends(svc)):
    return await service.set_poster({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.put("/{media_id}/blur", response_model=MutationOut, dependencies=WRITE)
async def apply_blur_controls(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                              service: MediaService = Depends(svc)):
    return await service.apply_blur_controls({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.put("/{media_id}/visibility", response_model=MutationOut, dependencies=WRITE)
async def set_visibility(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                         service: MediaService = Depends(svc)):
    return await service.set_visibility({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.put("/{media_id}/featured", response_model=MutationOut, dependencies=WRITE)
async def set_featured(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                       service: MediaService = Depends(svc)):
    return await service.set_featured({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.put("/{media_id}/coming-soon", response_model=MutationOut, dependencies=WRITE)
async def set_coming_soon(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                          service: MediaService = Depends(svc)):
    return await service.set_coming_soon({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.put("/{media_id}/tags", response_model=MutationOut, dependencies=WRITE)
async def set_tags(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                   service: MediaService = Depends(svc)):
    return await service.set_tags({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.post("/{media_id}/tags", response_model=MutationOut, dependencies=WRITE)
async def add_tag(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                  service: MediaService = Depends(svc)):
    return await service.add_tag({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.delete("/{media_id}/tags/{tag}", response_model=MutationOut, dependencies=WRITE)
async def remove_tag(media_id: str, tag: str, expected_version: int = Query(...),
                     principal: Principal = Depends(get_principal), service: MediaService = Depends(svc)):
    return await service.remove_tag(
        {"media_id": media_id, "tag": tag, "expected_version": expected_version},
        actor_user_id=principal.user_id,
    )

@router.put("/{media_id}/coperformers", response_model=MutationOut, dependencies=WRITE)
async def set_coperformers(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                           service: MediaService = Depends(svc)):
    return await service.set_coperformers({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.put("/{media_id}/ownership", response_model=MutationOut, dependencies=WRITE)
async def set_ownership(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                        service: MediaService = Depends(svc)):
    return await service.set_ownership({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.put("/{media_id}/meta", response_model=MutationOut, dependencies=WRITE)
async def set_custom_meta(media_id: str, payload: dict = Body(...), principal: Principal = Depends(get_principal),
                          service: MediaService = Depends(svc)):
    return await service.set_custom_meta({**payload, "media_id": media_id}, actor_user_id=principal.user_id)

@router.delete("/{media_id}", response_model=MutationOut, dependencies=WRITE)
async def soft_delete(media_id: str, expected_version: int = Query(...), principal: Principal = Depends(get_principal),
                      service: MediaService = Depends(svc)):
    return await service.soft_delete(
        {"media_id": media_id, "expected_version": expected_version},
        actor_user_id=principal.user_id,
    )

@router.delete("/{media_id}/purge", response_model=MutationOut, dependencies=[Depends(require_scopes("media:admin"))])
async def hard_delete(media_id: str, principal: Principal = Depends(get_principal), service: MediaService = Depends(svc)):
    return await service.hard_delete({"media_id": media_id}, actor_user_id=principal.user_id)

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.db import SessionLocal
from app.core.security import get_principal, require_scopes, Principal
from app.modules.collections.schemas import CollectionOut, CollectionPageOut, MembershipOut
from app.modules.collections.service import CollectionService
from app.platform.provider_registry import registry

router = APIRouter()

async def get_session():
    async with SessionLocal() as session:
        yield session

def svc(session: AsyncSession = Depends(get_session)) -> CollectionService:
    return CollectionService(session, clock=registry.clock(), ids=registry.identifiers())

@router.post("", response_model=CollectionOut, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_scopes("media:write"))])
async def create_collection(payload: dict = Body(...), principal: Principal = Depends(get_principal),
                            service: CollectionService = Depends(svc)):
    # owner defaults to the caller
    return await service.create_collection({"owner_user_id": principal.user_id, **payload}, actor_user_id=principal.user_id)

@router.put("/{collection_id}/items/{media_id}", response_model=MembershipOut,
            dependencies=[Depends(require_scopes("media:write"))])
async def add_to_collection(collection_id: str, media_id: str, position: int | None = Query(None, ge=0),
                            principal: Principal = Depends(get_principal), service: CollectionService = Depends(svc)):
    payload = {"collection_id": collection_id, "media_id": media_id}
    if position is not None:
        payload["position"] = position
    return await service.add_to_collection(payload, actor_user_id=principal.user_id)

@router.delete("/{collection_id}/items/{media_id}", response_model=MembershipOut,
               dependencies=[Depends(require_scopes("media:write"))])
async def remove_from_collection(collection_id: str, media_id: str, principal: Principal = Depends(get_principal),
                                 service: CollectionService = Depends(svc)):
    return await service.remove_from_collection(
        {"collection_id": collection_id, "media_id": media_id}, actor_user_id=principal.user_id,
    )

@router.get("/{collection_id}/items", response_model=CollectionPageOut,
            dependencies=[Depends(require_scopes("media:read"))])
async def list_collection(collection_id: str, limit: int | None = None, cursor: str | None = None,
                          service: CollectionService = Depends(svc)):
    payload = {"collection_id": collection_id}
    if limit is not None:
        payload["limit"] = limit
    if cursor:
        payload["cursor"] = cursor
    return await service.list_collection(payload)

from fastapi import APIRouter
from app.modules.media.router import router as media_router
from app.modules.collections.router import router as collections_router

api_router = APIRouter()
api_router.include_router(media_router, prefix="/media", tags=["media"])
api_router.include_router(collections_router, prefix="/collections", tags=["collections"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}

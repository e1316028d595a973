from datetime import datetime
from pydantic import BaseModel
from app.modules.media.schemas import MediaItemOut

class CollectionOut(BaseModel):
    collection_id: str
    owner_user_id: str
    title: str
    description: str | None = None
    visibility: str
    poster_url: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True

class MembershipOut(BaseModel):
    collection_id: str
    media_id: str
    position: int | None = None
    removed: bool = False

class CollectionItemOut(MediaItemOut):
    position: int

class CollectionPageOut(BaseModel):
    items: list[CollectionItemOut]
    next_cursor: str | None = None

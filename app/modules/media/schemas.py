from datetime import datetime
from typing import Any
from pydantic import BaseModel

class MediaItemOut(BaseModel):
    media_id: str
    owner_user_id: str
    media_type: str
    visibility: str
    status: str
    title: str | None = None
    description: str | None = None
    media_meta: dict | None = None
    image_variants_json: Any = None
    asset_url: str | None = None
    file_extension: str | None = None
    file_name: str | None = None
    file_size_bytes: int | None = None
    duration_seconds: int | None = None
    video_width: int | None = None
    video_height: int | None = None
    pending_conversion: bool = False
    poster_url: str | None = None
    gallery_poster_url: str | None = None
    featured: bool = False
    coming_soon: bool = False
    placeholder_lock: bool = False
    blurred_lock: bool = False
    blurred_value_px: int = 0
    trailer_blurred_lock: bool = False
    trailer_blurred_value_px: int = 0
    publish_date: datetime | None = None
    entry_date: datetime
    last_updated: datetime
    created_by_user_id: str | None = None
    updated_by_user_id: str | None = None
    version: int
    is_deleted: bool = False
    deleted_at: datetime | None = None
    # populated only when requested
    tags: list[str] | None = None
    coperformers: list[str] | None = None

    class Config:
        from_attributes = True

class MutationOut(BaseModel):
    media_id: str
    version: int | None = None
    status: str | None = None
    publish_date: datetime | None = None
    indexed: bool = True          # False when the post-commit projection failed
    purged: bool = False
    applied: list[str] = []       # setters run by the update dispatcher, in order

class MediaPageOut(BaseModel):
    items: list[MediaItemOut]
    next_cursor: str | None = None

class AuditOut(BaseModel):
    id: int
    media_id: str
    occurred_at: datetime
    actor_user_id: str | None = None
    action: str
    before_json: Any = None
    after_json: Any = None

    class Config:
        from_attributes = True

class ReindexOut(BaseModel):
    media_id: str
    reindexed: bool

from enum import Enum

class MediaStatus(str, Enum):
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    ARCHIVED = "archived"
    DELETED = "deleted"

class MediaType(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"
    IMAGE = "image"
    GALLERY = "gallery"
    FILE = "file"

class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    SUBSCRIBERS = "subscribers"
    PURCHASERS = "purchasers"
    UNLISTED = "unlisted"

class AuditAction(str, Enum):
    ADD = "add"
    UPDATE = "update"
    SCHEDULE = "schedule"
    CANCEL_SCHEDULE = "cancel_schedule"
    PUBLISH = "publish"
    STATUS_SET = "set_status"
    SOFT_DELETE = "soft_delete"
    HARD_DELETE = "hard_delete"
    OWNERSHIP = "set_ownership"
    VISIBILITY = "set_visibility"
    FEATURED = "set_featured"
    COMING_SOON = "set_coming_soon"
    TAGS_REPLACE = "set_tags"
    TAG_ADD = "add_tag"
    TAG_REMOVE = "remove_tag"
    COPERFORMERS_REPLACE = "set_coperformers"
    ASSET_ATTACH = "attach_primary_asset"
    POSTER_SET = "set_poster"
    BLUR_APPLY = "apply_blur_controls"
    CUSTOM_META = "set_custom_meta"
    COLLECTION_CREATE = "collection_create"
    COLLECTION_ADD = "collection_add"
    COLLECTION_REMOVE = "collection_remove"

# Visibilities that surface in the public listing
LISTED_VISIBILITIES = (
    Visibility.PUBLIC.value,
    Visibility.UNLISTED.value,
    Visibility.SUBSCRIBERS.value,
    Visibility.PURCHASERS.value,
)

# Allowed status moves; soft delete is permitted from any live status and is not listed here.
TRANSITIONS: dict[MediaStatus, frozenset[MediaStatus]] = {
    MediaStatus.DRAFT: frozenset({
        MediaStatus.PENDING_REVIEW, MediaStatus.SCHEDULED, MediaStatus.PUBLISHED, MediaStatus.ARCHIVED,
    }),
    MediaStatus.PENDING_REVIEW: frozenset({
        MediaStatus.SCHEDULED, MediaStatus.PUBLISHED, MediaStatus.ARCHIVED,
    }),
    MediaStatus.SCHEDULED: frozenset({
        MediaStatus.PENDING_REVIEW, MediaStatus.PUBLISHED, MediaStatus.ARCHIVED,
    }),
    MediaStatus.PUBLISHED: frozenset({MediaStatus.ARCHIVED}),
    MediaStatus.ARCHIVED: frozenset(),
    MediaStatus.DELETED: frozenset(),
}

def can_transition(current: str, target: str) -> bool:
    try:
        return MediaStatus(target) in TRANSITIONS[MediaStatus(current)]
    except ValueError:
        return False

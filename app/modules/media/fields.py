"""Declarative field registry: every inbound field is coerced by exactly one typed rule.

Coercion is lenient where the value can be repaired (strings are trimmed and
truncated, integers clamped into bounds, bad urls/enums/datetimes become
None) and strict where it cannot (unregistered field names, empty values for
``nonempty`` strings, documents that are not JSON, list fields that are not
lists).
"""
import json
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Mapping

from pydantic import HttpUrl, TypeAdapter, ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.errors import MissingFieldError, UnknownFieldError, ValidationError
from app.modules.media.constants import MediaStatus, MediaType, Visibility
from app.modules.media.normalizers import normalize_coperformers, normalize_tags

log = logging.getLogger("media.fields")

_url_adapter = TypeAdapter(HttpUrl)
_TRUTHY = {"true", "1", "yes", "y", "on"}
_FALSY = {"false", "0", "no", "n", "off", ""}
_datetime_adapter = TypeAdapter(datetime)


@dataclass(frozen=True)
class StringRule:
    max_length: int = 10000
    nonempty: bool = False

    def coerce(self, field: str, value: Any) -> str:
        if isinstance(value, str):
            s = value.strip()
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            s = str(value)
        else:
            s = ""
        if self.nonempty and not s:
            raise ValidationError(f"{field} must be a non-empty string", field=field)
        return s[: self.max_length]


def is_https_url(value: Any) -> bool:
    """True for a well-formed absolute https url within ``MAX_URL_LENGTH``."""
    if not isinstance(value, str) or not value or len(value) > settings.MAX_URL_LENGTH:
        return False
    try:
        url = _url_adapter.validate_python(value)
    except PydanticValidationError:
        return False
    return url.scheme == "https"


@dataclass(frozen=True)
class UrlRule:
    def coerce(self, field: str, value: Any) -> str | None:
        if value is None or value == "":
            return None
        s = value.strip() if isinstance(value, str) else value
        if not is_https_url(s):
            log.debug(f"{field} is not an https url; dropped")
            return None
        # stored as given; HttpUrl would add a trailing slash to bare hosts
        return s


@dataclass(frozen=True)
class IntRule:
    ge: int | None = None
    le: int | None = None

    def coerce(self, field: str, value: Any) -> int | None:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, int):
            n = value
        elif isinstance(value, float):
            if not math.isfinite(value):
                return None
            n = int(value)
        elif isinstance(value, str):
            try:
                n = int(float(value.strip()))
            except (ValueError, OverflowError):
                return None
        else:
            return None
        if self.ge is not None:
            n = max(n, self.ge)
        if self.le is not None:
            n = min(n, self.le)
        return n


@dataclass(frozen=True)
class BoolRule:
    def coerce(self, field: str, value: Any) -> bool | None:
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            s = value.strip().lower()
            if s in _TRUTHY:
                return True
            if s in _FALSY:
                return False
        return None


@dataclass(frozen=True)
class EnumRule:
    choices: tuple[str, ...]

    @classmethod
    def of(cls, enum_cls: type[Enum]) -> "EnumRule":
        return cls(tuple(m.value for m in enum_cls))

    def coerce(self, field: str, value: Any) -> str | None:
        s = value.value if isinstance(value, Enum) else str(value)
        if s not in self.choices:
            log.debug(f"{field} invalid enum value {s!r}")
            return None
        return s


@dataclass(frozen=True)
class JsonRule:
    def coerce(self, field: str, value: Any) -> Any:
        if value is None:
            return None
        try:
            return json.loads(json.dumps(value))
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must be a JSON document", field=field)


@dataclass(frozen=True)
class DateTimeRule:
    def coerce(self, field: str, value: Any) -> datetime | None:
        if value is None or value == "":
            return None
        if isinstance(value, date) and not isinstance(value, datetime):
            value = datetime(value.year, value.month, value.day)
        try:
            d = _datetime_adapter.validate_python(value)
        except PydanticValidationError:
            log.debug(f"{field} invalid datetime {value!r}")
            return None
        if d.tzinfo is None:
            d = d.replace(tzinfo=timezone.utc)
        return d.astimezone(timezone.utc)


FieldRule = StringRule | UrlRule | IntRule | BoolRule | EnumRule | JsonRule | DateTimeRule

# One line per field.
FIELD_SPEC: dict[str, FieldRule] = {
    # identities
    "media_id": StringRule(72, nonempty=True),
    "owner_user_id": StringRule(191, nonempty=True),
    "new_owner_user_id": StringRule(191, nonempty=True),
    "collection_id": StringRule(72, nonempty=True),

    # enums
    "media_type": EnumRule.of(MediaType),
    "visibility": EnumRule.of(Visibility),
    "status": EnumRule.of(MediaStatus),

    # text & meta
    "title": StringRule(settings.MAX_TITLE_LENGTH),
    "description": StringRule(settings.MAX_DESCRIPTION_LENGTH),
    "media_meta": JsonRule(),
    "image_variants_json": JsonRule(),
    "file_extension": StringRule(16),
    "file_name": StringRule(255),

    # urls
    "asset_url": UrlRule(),
    "poster_url": UrlRule(),
    "gallery_poster_url": UrlRule(),

    # numbers
    "file_size_bytes": IntRule(ge=0),
    "duration_seconds": IntRule(ge=0, le=settings.MAX_DURATION_SECONDS),
    "video_width": IntRule(ge=0),
    "video_height": IntRule(ge=0),
    "expected_version": IntRule(ge=0),
    "position": IntRule(ge=0),
    "limit": IntRule(ge=0, le=settings.MAX_PAGE_SIZE),
    "blurred_value_px": IntRule(ge=0, le=40),
    "trailer_blurred_value_px": IntRule(ge=0, le=40),

    # booleans
    "featured": BoolRule(),
    "coming_soon": BoolRule(),
    "pending_conversion": BoolRule(),
    "include_tags": BoolRule(),
    "include_coperformers": BoolRule(),
    "placeholder_lock": BoolRule(),
    "blurred_lock": BoolRule(),
    "trailer_blurred_lock": BoolRule(),
    "soft_delete": BoolRule(),
    "hard_delete": BoolRule(),
    "merge": BoolRule(),

    # lists (normalized after coercion)
    "tags": JsonRule(),
    "tag": StringRule(settings.MAX_TAG_LENGTH, nonempty=True),
    "coperformers": JsonRule(),
    "performer_ids": JsonRule(),

    # listing
    "filters": JsonRule(),
    "cursor": StringRule(512),
    "query": StringRule(500),

    # dates
    "publish_date": DateTimeRule(),
}

# Minimal required-field list per operation. Operations absent here are unknown.
REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "handle_add_media_item": ("owner_user_id", "media_type"),
    "handle_update_media_item": ("media_id", "expected_version"),
    "handle_schedule_media_item": ("media_id", "expected_version", "publish_date"),
    "handle_publish_media_item": ("media_id", "expected_version"),
    "cancel_schedule": ("media_id",),
    "set_status": ("media_id", "status"),
    "update_metadata": ("media_id",),
    "attach_primary_asset": ("media_id",),
    "set_poster": ("media_id", "poster_url"),
    "apply_blur_controls": ("media_id",),
    "set_visibility": ("media_id", "visibility"),
    "set_featured": ("media_id", "featured"),
    "set_coming_soon": ("media_id", "coming_soon"),
    "set_tags": ("media_id", "tags"),
    "add_tag": ("media_id", "tag"),
    "remove_tag": ("media_id", "tag"),
    "set_coperformers": ("media_id", "performer_ids"),
    "set_ownership": ("media_id", "new_owner_user_id"),
    "set_custom_meta": ("media_id", "media_meta"),
    "soft_delete": ("media_id",),
    "hard_delete": ("media_id",),
    "get_by_id": ("media_id",),
    "list_audit": ("media_id",),
    "reindex": ("media_id",),
    "list_by_owner": ("owner_user_id",),
    "list_by_tag": ("tag",),
    "list_public": (),
    "list_featured": (),
    "list_coming_soon": (),
    "search": (),
    "create_collection": ("owner_user_id", "title"),
    "add_to_collection": ("collection_id", "media_id"),
    "remove_from_collection": ("collection_id", "media_id"),
    "list_collection": ("collection_id",),
}

_LIST_NORMALIZERS = {
    "tags": normalize_tags,
    "coperformers": normalize_coperformers,
    "performer_ids": normalize_coperformers,
}


def _require_list(field: str, value: Any) -> list | tuple:
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{field} must be a list", field=field)
    return value


def sanitize(payload: Any, operation: str | None = None) -> dict[str, Any]:
    """Validate required fields for ``operation`` and coerce every field by its rule.

    Pure: no I/O. Raises ``MissingFieldError`` for an absent (or null)
    required field, ``UnknownFieldError`` for any unregistered name and
    ``ValidationError`` for a list field that is not a list. A null list
    field is treated as not supplied.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Payload must be an object")

    if operation is not None:
        required = REQUIRED_FIELDS.get(operation)
        if required is None:
            raise ValidationError(f"Unknown operation '{operation}'", operation=operation)
        for f in required:
            if payload.get(f) is None:
                raise MissingFieldError(f, operation)

    clean: dict[str, Any] = {}
    for k, v in payload.items():
        rule = FIELD_SPEC.get(k)
        if rule is None:
            raise UnknownFieldError(k)
        clean[k] = rule.coerce(k, v)

    for k, normalize in _LIST_NORMALIZERS.items():
        if k not in clean:
            continue
        if clean[k] is None:
            del clean[k]
            continue
        clean[k] = normalize(_require_list(k, clean[k]))
    if "tag" in clean:
        normalized = normalize_tags([clean["tag"]])
        if not normalized:
            raise ValidationError("Invalid tag", field="tag")
        clean["tag"] = normalized[0]
    return clean


# Listing filters travel as one JSON document under "filters".
FILTER_SPEC: dict[str, FieldRule] = {
    "media_type": EnumRule.of(MediaType),
    "status": EnumRule.of(MediaStatus),
    "min_duration": IntRule(ge=0),
    "max_duration": IntRule(ge=0),
    "tags_all": JsonRule(),
    "from_date": DateTimeRule(),
    "to_date": DateTimeRule(),
}


def sanitize_filters(filters: Any) -> dict[str, Any]:
    if filters is None:
        return {}
    if not isinstance(filters, Mapping):
        raise ValidationError("filters must be an object", field="filters")
    clean: dict[str, Any] = {}
    for k, v in filters.items():
        rule = FILTER_SPEC.get(k)
        if rule is None:
            raise UnknownFieldError(f"filters.{k}")
        clean[k] = rule.coerce(k, v)
    if clean.get("tags_all") is not None:
        clean["tags_all"] = normalize_tags(_require_list("filters.tags_all", clean["tags_all"]))
    return clean

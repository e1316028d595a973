"""Lifecycle rule sets gating entry into ``published`` and ``scheduled``.

Each rule set maps a media type to an ordered tuple of predicates. The
evaluator checks them in order and stops at the first one that fails, so the
error always names a single atom and field.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from app.core.errors import RuleViolationError, UnknownRuleSetError, UnmappedMediaTypeError
from app.modules.media.constants import MediaType
from app.modules.media.fields import is_https_url


class PredicateKind(str, Enum):
    REQUIRED = "required"
    HTTPS = "https"
    POSITIVE = "positive"
    EQUALS = "equals"
    FUTURE = "future"


@dataclass(frozen=True)
class Predicate:
    kind: PredicateKind
    field: str
    value: Any = None

    @property
    def atom(self) -> str:
        if self.kind is PredicateKind.HTTPS:
            return f"{self.field}:https"
        if self.kind is PredicateKind.POSITIVE:
            return f"{self.field}>0"
        if self.kind is PredicateKind.FUTURE:
            return f"{self.field}>now"
        if self.kind is PredicateKind.EQUALS:
            literal = str(self.value).lower() if isinstance(self.value, bool) else _literal(self.value)
            return f"{self.field}={literal}"
        return self.field


def required(field: str) -> Predicate:
    return Predicate(PredicateKind.REQUIRED, field)

def https(field: str) -> Predicate:
    return Predicate(PredicateKind.HTTPS, field)

def positive(field: str) -> Predicate:
    return Predicate(PredicateKind.POSITIVE, field)

def equals(field: str, value: Any) -> Predicate:
    return Predicate(PredicateKind.EQUALS, field, value)

def future(field: str) -> Predicate:
    return Predicate(PredicateKind.FUTURE, field)


def _literal(v: Any) -> str:
    return v.value if isinstance(v, Enum) else str(v)


def _publish_rules(media_type: MediaType) -> tuple[Predicate, ...]:
    base = (required("title"), https("asset_url"))
    if media_type is MediaType.AUDIO:
        return base + (positive("duration_seconds"), equals("media_type", media_type))
    if media_type is MediaType.VIDEO:
        return base + (
            positive("duration_seconds"),
            https("poster_url"),
            equals("pending_conversion", False),
            equals("media_type", media_type),
        )
    return base + (equals("media_type", media_type),)


PUBLISH = "publish"
SCHEDULE = "schedule"

RULE_SETS: dict[str, dict[str, tuple[Predicate, ...]]] = {
    PUBLISH: {mt.value: _publish_rules(mt) for mt in MediaType},
    SCHEDULE: {mt.value: _publish_rules(mt) + (future("publish_date"),) for mt in MediaType},
}


def _as_utc(v: Any) -> datetime | None:
    if not isinstance(v, datetime):
        return None
    return v.replace(tzinfo=timezone.utc) if v.tzinfo is None else v


def _holds(p: Predicate, row: Mapping[str, Any], now: datetime) -> bool:
    v = row.get(p.field)
    if p.kind is PredicateKind.REQUIRED:
        if isinstance(v, str):
            return bool(v.strip())
        return v is not None
    if p.kind is PredicateKind.HTTPS:
        return is_https_url(v)
    if p.kind is PredicateKind.POSITIVE:
        if v is None or isinstance(v, bool):
            return False
        try:
            return int(v) > 0
        except (TypeError, ValueError):
            return False
    if p.kind is PredicateKind.EQUALS:
        if isinstance(p.value, bool):
            return bool(v) is p.value
        return v is not None and _literal(v) == _literal(p.value)
    if p.kind is PredicateKind.FUTURE:
        d = _as_utc(v)
        return d is not None and d > _as_utc(now)
    raise ValueError(f"unhandled predicate kind {p.kind!r}")


def evaluate(rule_set: str, row: Mapping[str, Any], now: datetime) -> None:
    """Check ``row`` against the ``rule_set`` rules for its media type.

    ``row`` is the persisted row overlaid with the values the operation is
    about to write. Raises ``RuleViolationError`` naming the first failing
    atom; returns None when every predicate holds.
    """
    by_type = RULE_SETS.get(rule_set)
    if by_type is None:
        raise UnknownRuleSetError(rule_set)
    media_type = _literal(row.get("media_type")) if row.get("media_type") is not None else None
    predicates = by_type.get(media_type) if media_type is not None else None
    if predicates is None:
        raise UnmappedMediaTypeError(rule_set, media_type)

    for p in predicates:
        if not _holds(p, row, now):
            raise RuleViolationError(
                f"Cannot {rule_set} {media_type}: '{p.atom}' not satisfied",
                rule_set=rule_set,
                media_type=media_type,
                atom=p.atom,
                field=p.field,
            )

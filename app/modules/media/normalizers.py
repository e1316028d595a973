"""List normalization for tags and co-performer ids.

Both normalizers are idempotent: feeding a normalized list back in returns it
unchanged. Callers pass real lists only; shape checking happens in
``fields.sanitize``.
"""
from typing import Any, Iterable

from app.core.config import settings


def _dedupe(values: Iterable[Any], *, lower: bool, max_len: int, max_count: int) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for v in values:
        s = v.strip() if isinstance(v, str) else ""
        if lower:
            s = s.lower()
        # clipped value must itself be normalized (idempotence)
        s = s[:max_len].rstrip()
        if not s or s in seen:
            continue
        out.append(s)
        seen.add(s)
        if len(out) >= max_count:
            break
    return out


def normalize_tags(tags: Any) -> list[str]:
    """Trim, lower-case, drop empties, clip, dedupe (first occurrence wins), cap count."""
    if not isinstance(tags, (list, tuple)):
        return []
    return _dedupe(tags, lower=True, max_len=settings.MAX_TAG_LENGTH, max_count=settings.MAX_TAG_COUNT)


def normalize_coperformers(ids: Any) -> list[str]:
    """Same as tags but case is significant for performer identifiers."""
    if not isinstance(ids, (list, tuple)):
        return []
    return _dedupe(ids, lower=False, max_len=settings.MAX_PERFORMER_ID_LENGTH, max_count=settings.MAX_COPERFORMERS)

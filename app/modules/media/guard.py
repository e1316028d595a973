from app.core.errors import ConflictError


def expect_version(media_id: str, current: int | None, expected: int | None) -> int:
    """Refuse the write unless ``expected`` matches the loaded version; return the next version."""
    if expected is None or current is None or int(current) != int(expected):
        raise ConflictError(media_id, expected, current)
    return int(current) + 1

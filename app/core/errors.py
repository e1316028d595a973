from datetime import datetime, timezone
from typing import Any


class CatalogError(Exception):
    """Base error for every failure the catalog core surfaces to a caller."""

    code = "CATALOG_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


# ---- Validation ----

class ValidationError(CatalogError):
    code = "VALIDATION_FAILED"
    status_code = 422

    def __init__(self, message: str, field: str | None = None, **details: Any):
        if field is not None:
            details["field"] = field
        super().__init__(message, details)


class UnknownFieldError(ValidationError):
    code = "UNKNOWN_FIELD"

    def __init__(self, field: str):
        super().__init__(f"Unexpected field '{field}'", field=field)


class MissingFieldError(ValidationError):
    code = "MISSING_FIELD"

    def __init__(self, field: str, operation: str | None = None):
        super().__init__(f"Missing required field '{field}'", field=field, operation=operation)


class UnknownRuleSetError(ValidationError):
    code = "UNKNOWN_RULE_SET"

    def __init__(self, rule_set: str):
        super().__init__(f"Unknown rule set '{rule_set}'", rule_set=rule_set)


class UnmappedMediaTypeError(ValidationError):
    code = "UNMAPPED_MEDIA_TYPE"

    def __init__(self, rule_set: str, media_type: Any):
        super().__init__(
            f"No {rule_set} rules for media_type='{media_type}'",
            rule_set=rule_set,
            media_type=media_type,
        )


# ---- Concurrency ----

class ConflictError(CatalogError):
    code = "VERSION_CONFLICT"
    status_code = 409

    def __init__(self, media_id: str, expected_version: int | None, actual_version: int | None):
        if expected_version is None:
            message = "expected_version required"
        else:
            message = f"Version mismatch: expected {expected_version}, found {actual_version}"
        super().__init__(message, {
            "media_id": media_id,
            "expected_version": expected_version,
            "actual_version": actual_version,
        })
        self.expected_version = expected_version
        self.actual_version = actual_version


# ---- Lookup ----

class NotFoundError(CatalogError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found", {"entity": entity, "entity_id": entity_id})


# ---- Lifecycle ----

class StateTransitionError(CatalogError):
    code = "INVALID_STATE_TRANSITION"
    status_code = 409

    def __init__(self, media_id: str, current_status: str, target_status: str):
        super().__init__(
            f"Cannot move from '{current_status}' to '{target_status}'",
            {"media_id": media_id, "current_status": current_status, "target_status": target_status},
        )
        self.current_status = current_status
        self.target_status = target_status


class RuleViolationError(CatalogError):
    code = "RULE_VIOLATION"
    status_code = 422

    def __init__(self, message: str, *, rule_set: str, media_type: str, atom: str, field: str):
        super().__init__(message, {
            "rule_set": rule_set,
            "media_type": media_type,
            "atom": atom,
            "field": field,
        })
        self.atom = atom
        self.field = field

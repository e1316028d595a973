from datetime import datetime, timezone
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import Boolean, Integer, String, TIMESTAMP
from sqlalchemy.types import TypeDecorator

class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always round-trips as UTC.

    SQLite drops tzinfo on the way back; naive values coming out of the
    driver are taken to be UTC.
    """

    impl = TIMESTAMP(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

class Base(DeclarativeBase):
    pass

class VersionedSoftDeleteMixin:
    # Lifecycle bookkeeping shared by versioned catalog entities.
    created_by_user_id: Mapped[str | None] = mapped_column(String(191), nullable=True)
    updated_by_user_id: Mapped[str | None] = mapped_column(String(191), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    entry_date: Mapped[datetime] = mapped_column(UTCDateTime())
    last_updated: Mapped[datetime] = mapped_column(UTCDateTime())
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Integer, BigInteger, Boolean, JSON, ForeignKey, UniqueConstraint
from app.core.base import Base, UTCDateTime, VersionedSoftDeleteMixin

class MediaItem(Base, VersionedSoftDeleteMixin):
    __tablename__ = "media"

    media_id: Mapped[str] = mapped_column(String(72), primary_key=True)
    owner_user_id: Mapped[str] = mapped_column(String(191), index=True)

    media_type: Mapped[str] = mapped_column(String(20))     # audio | video | image | gallery | file
    visibility: Mapped[str] = mapped_column(String(20), default="private")
    status: Mapped[str] = mapped_column(String(50), default="draft", index=True)

    # text & meta
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    image_variants_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # primary asset
    asset_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_extension: Mapped[str | None] = mapped_column(String(16), nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    video_width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    video_height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pending_conversion: Mapped[bool] = mapped_column(Boolean, default=False)

    poster_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    gallery_poster_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    featured: Mapped[bool] = mapped_column(Boolean, default=False)
    coming_soon: Mapped[bool] = mapped_column(Boolean, default=False)

    # presentation controls
    placeholder_lock: Mapped[bool] = mapped_column(Boolean, default=False)
    blurred_lock: Mapped[bool] = mapped_column(Boolean, default=False)
    blurred_value_px: Mapped[int] = mapped_column(Integer, default=0)
    trailer_blurred_lock: Mapped[bool] = mapped_column(Boolean, default=False)
    trailer_blurred_value_px: Mapped[int] = mapped_column(Integer, default=0)

    publish_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # UPDATE statements carry "WHERE version=<loaded>"; the mutator assigns the new value.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

class MediaTag(Base):
    __tablename__ = "media_tags"
    __table_args__ = (UniqueConstraint("media_id", "tag", name="uq_media_tag"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    media_id: Mapped[str] = mapped_column(ForeignKey("media.media_id", ondelete="CASCADE"), index=True)
    tag: Mapped[str] = mapped_column(String(100), index=True)

class MediaCoPerformer(Base):
    __tablename__ = "media_coperformers"
    __table_args__ = (UniqueConstraint("media_id", "performer_id", name="uq_media_coperformer"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    media_id: Mapped[str] = mapped_column(ForeignKey("media.media_id", ondelete="CASCADE"), index=True)
    performer_id: Mapped[str] = mapped_column(String(191))

class MediaReminder(Base):
    # "notify me" subscriptions for coming-soon items; written by the notifications service
    __tablename__ = "media_reminders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    media_id: Mapped[str] = mapped_column(ForeignKey("media.media_id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String(191))
    created_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Integer, ForeignKey, UniqueConstraint
from app.core.base import Base, UTCDateTime

class Collection(Base):
    __tablename__ = "collections"

    collection_id: Mapped[str] = mapped_column(String(72), primary_key=True)
    owner_user_id: Mapped[str] = mapped_column(String(191), index=True)
    title: Mapped[str] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    visibility: Mapped[str] = mapped_column(String(20), default="private")
    poster_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime())

class CollectionMedia(Base):
    __tablename__ = "collection_media"
    __table_args__ = (UniqueConstraint("collection_id", "media_id", name="uq_collection_media"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection_id: Mapped[str] = mapped_column(ForeignKey("collections.collection_id", ondelete="CASCADE"), index=True)
    media_id: Mapped[str] = mapped_column(ForeignKey("media.media_id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)  # display order, higher first; duplicates allowed

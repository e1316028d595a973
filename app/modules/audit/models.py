from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, JSON
from app.core.base import Base, UTCDateTime

class MediaAudit(Base):
    # Append-only: rows are inserted inside the owning mutation's transaction and
    # only ever removed when the entity they describe is hard-deleted.
    __tablename__ = "media_audit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    media_id: Mapped[str] = mapped_column(String(72), index=True)  # media or collection id
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime())
    actor_user_id: Mapped[str | None] = mapped_column(String(191), nullable=True)  # null for system actions
    action: Mapped[str] = mapped_column(String(100))
    before_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)

from datetime import datetime
from typing import Any
from fastapi.encoders import jsonable_encoder
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from app.modules.audit.models import MediaAudit
from app.modules.media.constants import AuditAction

class AuditRecorder:
    """Writes audit rows on the caller's session; the caller owns the transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(self,
                     entity_id: str,
                     *,
                     action: AuditAction,
                     actor_user_id: str | None,
                     occurred_at: datetime,
                     before: dict[str, Any] | None = None,
                     after: dict[str, Any] | None = None) -> MediaAudit:
        ev = MediaAudit(
            media_id=entity_id,
            occurred_at=occurred_at,
            actor_user_id=actor_user_id or None,
            action=AuditAction(action).value,
            # snapshots may carry datetimes and enums
            before_json=jsonable_encoder(before) if before is not None else None,
            after_json=jsonable_encoder(after) if after is not None else None,
        )
        self.session.add(ev)
        await self.session.flush()
        return ev

    async def list_for(self, entity_id: str) -> list[MediaAudit]:
        q = select(MediaAudit).where(MediaAudit.media_id == entity_id).order_by(MediaAudit.id)
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def purge(self, entity_id: str) -> int:
        res = await self.session.execute(delete(MediaAudit).where(MediaAudit.media_id == entity_id))
        return res.rowcount or 0

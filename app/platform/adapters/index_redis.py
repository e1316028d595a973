import logging
from redis.asyncio import from_url as redis_from_url
from app.platform.ports.search_index import SearchIndexPort
from app.core.config import settings

log = logging.getLogger("index.redis")

class RedisSearchIndex(SearchIndexPort):
    """Appends projection requests to a Redis stream consumed by the external indexer."""

    def __init__(self):
        if not settings.REDIS_URL:
            raise RuntimeError("REDIS_URL not configured")
        self.redis = redis_from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        self.stream = settings.SEARCH_INDEX_STREAM

    async def _append(self, op: str, entity_id: str) -> None:
        await self.redis.xadd(
            self.stream,
            {"op": op, "entity_id": entity_id},
            maxlen=settings.SEARCH_INDEX_STREAM_MAXLEN,
            approximate=True,
        )
        log.debug(f"[REDIS INDEX] XADD stream={self.stream} op={op} id={entity_id}")

    async def upsert(self, entity_id: str) -> None:
        await self._append("upsert", entity_id)

    async def delete(self, entity_id: str) -> None:
        await self._append("delete", entity_id)

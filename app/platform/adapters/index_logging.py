import logging
from app.platform.ports.search_index import SearchIndexPort

log = logging.getLogger("index.logging")

class LoggingSearchIndex(SearchIndexPort):
    """Projection adapter for deployments without a search backend: records each request in the log."""

    async def upsert(self, entity_id: str) -> None:
        log.info(f"[LOG INDEX] upsert id={entity_id}")

    async def delete(self, entity_id: str) -> None:
        log.info(f"[LOG INDEX] delete id={entity_id}")

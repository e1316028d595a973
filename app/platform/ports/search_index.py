from typing import Protocol, runtime_checkable

@runtime_checkable
class SearchIndexPort(Protocol):
    async def upsert(self, entity_id: str) -> None: ...
    async def delete(self, entity_id: str) -> None: ...

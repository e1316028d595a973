from app.core.config import settings
from app.platform.ports.search_index import SearchIndexPort
from app.platform.adapters.index_logging import LoggingSearchIndex
from app.platform.adapters.index_redis import RedisSearchIndex
from app.platform.ports.clock import ClockPort
from app.platform.adapters.clock_system import SystemClock
from app.platform.ports.identifiers import IdentifierPort
from app.platform.adapters.ids_uuid import UuidIdentifiers

class ProviderRegistry:
    _search_index: SearchIndexPort | None = None
    _clock: ClockPort | None = None
    _identifiers: IdentifierPort | None = None

    @classmethod
    def search_index(cls) -> SearchIndexPort:
        if cls._search_index is None:
            if settings.SEARCH_INDEX_PROVIDER == "redis":
                cls._search_index = RedisSearchIndex()
            else:
                cls._search_index = LoggingSearchIndex()
        return cls._search_index

    @classmethod
    def clock(cls) -> ClockPort:
        if cls._clock is None:
            cls._clock = SystemClock()
        return cls._clock

    @classmethod
    def identifiers(cls) -> IdentifierPort:
        if cls._identifiers is None:
            cls._identifiers = UuidIdentifiers()
        return cls._identifiers

registry = ProviderRegistry()

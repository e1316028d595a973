from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Literal

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    APP_NAME: str = "media-catalog"
    ENV: Literal["local", "dev", "test", "prod"] = "local"
    API_PREFIX: str = "/api/v1"

    # DB
    DATABASE_DSN: str = "sqlite+aiosqlite:///./media_catalog.db"
    DB_MANAGE: str = "create_all"  # create_all | migrations

    # Auth (demo HS256; use OIDC/JWKS in prod)
    JWT_ALG: str = "HS256"
    JWT_SECRET: str = "dev-secret-change-me"
    REQUIRED_AUDIENCE: str | None = None

    # Search index projection
    SEARCH_INDEX_PROVIDER: Literal["logging", "redis"] = "logging"
    REDIS_URL: str | None = None
    SEARCH_INDEX_STREAM: str = "media.index"
    SEARCH_INDEX_STREAM_MAXLEN: int = 10000

    # Caps
    MAX_TAG_COUNT: int = 25
    MAX_TAG_LENGTH: int = 48
    MAX_COPERFORMERS: int = 16
    MAX_PERFORMER_ID_LENGTH: int = 191
    MAX_TITLE_LENGTH: int = 200
    MAX_DESCRIPTION_LENGTH: int = 16000
    MAX_URL_LENGTH: int = 2000
    MAX_DURATION_SECONDS: int = 8 * 60 * 60

    # Paging
    DEFAULT_PAGE_SIZE: int = 24
    MAX_PAGE_SIZE: int = 100

    @field_validator("DATABASE_DSN")
    @classmethod
    def _must_be_async(cls, v: str):
        if "+asyncpg" not in v and "+aiosqlite" not in v:
            raise ValueError("DATABASE_DSN must use an async driver (postgresql+asyncpg:// or sqlite+aiosqlite://)")
        return v

settings = Settings()

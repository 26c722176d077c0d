"""
Application Settings
Load from environment variables
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings from environment"""

    # ======================
    # Application
    # ======================
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CONFIG_DIR: Optional[str] = None

    # ======================
    # Key-value store
    # ======================
    STORE_BACKEND: str = "memory"   # memory | sql | redis

    DATABASE_URL: str = "sqlite+aiosqlite:///./plan_engine.db"
    DB_ECHO: bool = False
    AUTO_CREATE_TABLES: bool = True

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_PREFIX: str = "plan:"
    REDIS_LOCK_TIMEOUT_SECONDS: float = 10.0

    # ======================
    # Candidate ranking
    # ======================
    CANDIDATE_PROVIDER: str = "static"   # static | defillama
    CANDIDATE_FALLBACK_PROVIDERS: str = "static"
    DEFILLAMA_POOLS_URL: str = "https://yields.llama.fi/pools"
    CANDIDATE_TIMEOUT_SECONDS: float = 5.0
    CANDIDATE_CACHE_TTL_SECONDS: int = 300

    # ======================
    # Ledger
    # ======================
    SEED_BALANCES_ENABLED: bool = True

    # ======================
    # Events
    # ======================
    EVENT_QUEUE_MAXSIZE: int = 1000

    # ======================
    # Pydantic v2 config
    # ======================
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="forbid",
    )

    @property
    def fallback_providers(self) -> list[str]:
        return [p.strip().lower() for p in self.CANDIDATE_FALLBACK_PROVIDERS.split(",") if p.strip()]


settings = Settings()

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    env: str = "dev"
    database_url: str = "sqlite:///./data/listingsync.db"
    redis_url: str = "redis://localhost:6379/0"

    seed_default_sources: bool = True

    # Upstream marketplace API
    upstream_api_token: str = ""
    upstream_timeout_seconds: float = 30.0
    rate_limit_max_retries: int = 3
    rate_limit_backoff_seconds: float = 2.0

    # Ingestion
    ingestion_page_delay_seconds: float = 1.0

    # Reconciliation
    reconciliation_batch_size: int = 50
    reconciliation_concurrency: int = 10
    reconciliation_resume: bool = True

    # Run exclusivity and caller-imposed deadline (0 = no deadline)
    run_lease_seconds: int = 3600
    run_timeout_seconds: float = 0.0

    # Optional deal scoring
    scoring_enabled: bool = False
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"

    model_config = SettingsConfigDict(env_prefix="LISTINGSYNC_", env_file=".env", extra="ignore")

    def model_post_init(self, __context):
        if self.env == "prod" and self.database_url.startswith("sqlite"):
            raise ValueError(
                "Production requires explicit DATABASE_URL (not SQLite)"
            )


@lru_cache
def get_settings() -> Settings:
    return Settings()

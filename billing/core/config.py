from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "Staff Billing Service"
    environment: str = "dev"
    log_level: str = "INFO"

    # ─────────── API ───────────
    api_prefix: str = "/api/v1"
    request_id_header: str = "X-Request-Id"
    actor_id_header: str = "X-Actor-Id"

    # ─────────── DATABASE ───────────
    database_url: str
    db_echo: bool = False

    # ─────────── BILLING ───────────
    currency_symbol: str = "$"
    default_page_limit: int = 50
    max_page_limit: int = 500


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

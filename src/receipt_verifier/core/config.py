from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"

    browser_pool_size: int = 3
    browser_executable_path: Path | None = None

    verification_cache_ttl: int = 300
    cache_check_period: int = 60

    http_timeout_seconds: float = 30.0
    render_timeout_seconds: float = 20.0
    render_settle_seconds: float = 3.0
    table_wait_timeout_seconds: float = 10.0

    cbe_receipt_url: str = "https://apps.cbe.com.et:100/?id="
    awash_receipt_url: str = "https://awashpay.awashbank.com:8225/"
    abyssinia_receipt_url: str = "https://cs.bankofabyssinia.com/slip/?trx="

    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )


settings = Settings()

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Runtime configuration, read from `LIGHTLISTER_*` environment variables
    and an optional `.env` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIGHTLISTER_", env_file=".env", extra="ignore"
    )

    log_level: str = "INFO"

    # Empty URI selects the in-memory store.
    mongo_uri: str = ""
    mongo_db: str = "lightlister"

    ledger_log_path: Path = Path("logs/credit_ledger.log")

    starter_grant: int = 10
    goodwill_grant: int = 5
    low_credit_threshold: int = 20

    anthropic_api_key: Optional[SecretStr] = None
    anthropic_model: str = "claude-3-5-sonnet-20241022"
    anthropic_max_tokens: int = 1024
    ai_grouping_enabled: bool = True
    ai_max_images: int = 20


@lru_cache
def get_settings() -> Settings:
    return Settings()

from __future__ import annotations

from typing import Optional

from pydantic import AnyUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from madmatch.app.domain.models import FallbackStrategy


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=False,
        extra="ignore",
    )

    SUPABASE_URL: Optional[AnyUrl] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    SPOONACULAR_API_KEY: Optional[str] = None
    SPOONACULAR_BASE_URL: str = "https://api.spoonacular.com"
    SPOONACULAR_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)
    SPOONACULAR_CACHE_TTL_SECONDS: int = Field(default=24 * 60 * 60, gt=0)

    RECIPE_CACHE_TTL_SECONDS: int = Field(default=10 * 60, gt=0)
    RECIPE_CACHE_MAX_ENTRIES: int = Field(default=100, gt=0)
    RECIPE_MIN_RESULTS_BEFORE_FALLBACK: int = Field(default=3, ge=0)
    RECIPE_FALLBACK_STRATEGY: FallbackStrategy = FallbackStrategy.PRIORITY
    RECIPE_DISABLE_UNHEALTHY_SOURCES: bool = False


settings = Settings()

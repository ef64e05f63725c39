# madmatch/app/deps.py (process-wide singletons)

from __future__ import annotations

import logging

from supabase import Client, create_client

from madmatch.app.config import Settings, settings
from madmatch.app.infra.cache import TTLCache
from madmatch.app.infra.sources.spoonacular_source import SpoonacularRecipeSource
from madmatch.app.infra.sources.supabase_source import SupabaseRecipeSource
from madmatch.app.services.recipe_service import RecipeService

logger = logging.getLogger(__name__)

_client: Client | None = None
_recipe_service: RecipeService | None = None


def get_supabase() -> Client:
    global _client
    if _client is None:
        if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY required")
        _client = create_client(str(settings.SUPABASE_URL), settings.SUPABASE_SERVICE_ROLE_KEY)
    return _client


def build_recipe_service(config: Settings, client: Client | None = None) -> RecipeService:
    """
    Default wiring: the database first, Spoonacular as fallback when an API
    key is configured.
    """
    sources = [
        SupabaseRecipeSource(
            client=client or get_supabase(),
            source_id="database",
            source_name="Database",
            priority=1,
        )
    ]

    if config.SPOONACULAR_API_KEY:
        sources.append(
            SpoonacularRecipeSource(
                api_key=config.SPOONACULAR_API_KEY,
                base_url=config.SPOONACULAR_BASE_URL,
                source_id="spoonacular",
                source_name="Spoonacular",
                priority=2,
                timeout_seconds=config.SPOONACULAR_TIMEOUT_SECONDS,
                cache=TTLCache(config.SPOONACULAR_CACHE_TTL_SECONDS, max_entries=1000),
            )
        )
    else:
        logger.info("SPOONACULAR_API_KEY not set, Spoonacular source disabled")

    return RecipeService(
        sources=sources,
        cache_ttl_seconds=config.RECIPE_CACHE_TTL_SECONDS,
        cache_max_entries=config.RECIPE_CACHE_MAX_ENTRIES,
        min_results_before_fallback=config.RECIPE_MIN_RESULTS_BEFORE_FALLBACK,
        fallback_strategy=config.RECIPE_FALLBACK_STRATEGY,
        disable_unhealthy_sources=config.RECIPE_DISABLE_UNHEALTHY_SOURCES,
    )


def get_recipe_service() -> RecipeService:
    global _recipe_service
    if _recipe_service is None:
        _recipe_service = build_recipe_service(settings)
    return _recipe_service

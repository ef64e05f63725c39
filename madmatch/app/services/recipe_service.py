# madmatch/app/services/recipe_service.py
"""
Multi-source recipe orchestrator.
The only recipe component the rest of the application talks to.
"""
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Optional, Sequence

from madmatch.app.domain.errors import SourceUnavailableError
from madmatch.app.domain.models import (
    AggregateHealth,
    FailurePolicy,
    FallbackStrategy,
    HealthStatus,
    LookupStatus,
    Recipe,
    RecipeFilters,
    RecipeLookup,
    SourceStatus,
)
from madmatch.app.infra.cache import MISSING, TTLCache
from madmatch.app.infra.sources.base import RecipeSource

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 10 * 60
DEFAULT_CACHE_MAX_ENTRIES = 100
DEFAULT_MIN_RESULTS_BEFORE_FALLBACK = 3


def deduplicate_recipes(recipes: Sequence[Recipe]) -> list[Recipe]:
    """Keep the first recipe for each case-folded title."""
    seen: set[str] = set()
    unique: list[Recipe] = []
    for recipe in recipes:
        if recipe.dedup_key in seen:
            continue
        seen.add(recipe.dedup_key)
        unique.append(recipe)
    return unique


def _cache_key(operation: str, *args: Any) -> str:
    return f"{operation}:{json.dumps(args, sort_keys=True)}"


class RecipeService:
    """
    Service for querying recipes across several sources.

    Responsibilities:
    - Keep sources ordered by priority (lower value first)
    - Fall back to lower priority sources when results are scarce
    - Deduplicate results across sources by title
    - Cache results for a short time
    - Report per-source health
    """

    def __init__(
        self,
        sources: Sequence[RecipeSource] = (),
        cache: Optional[TTLCache] = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        cache_max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
        min_results_before_fallback: int = DEFAULT_MIN_RESULTS_BEFORE_FALLBACK,
        fallback_strategy: FallbackStrategy = FallbackStrategy.PRIORITY,
        disable_unhealthy_sources: bool = False,
    ):
        self._cache = cache if cache is not None else TTLCache(cache_ttl_seconds, max_entries=cache_max_entries)
        self.min_results_before_fallback = min_results_before_fallback
        self.fallback_strategy = FallbackStrategy(fallback_strategy)
        self.disable_unhealthy_sources = disable_unhealthy_sources
        self._lock = threading.RLock()
        self._sources: list[RecipeSource] = []
        self._auto_disabled: set[str] = set()

        for source in sources:
            self._sources.append(source)
        self._sort_sources()

    @property
    def sources(self) -> list[RecipeSource]:
        with self._lock:
            return list(self._sources)

    def _sort_sources(self) -> None:
        with self._lock:
            self._sources.sort(key=lambda source: source.get_source_info().priority)

    def _enabled_sources(self) -> list[RecipeSource]:
        return [source for source in self.sources if source.get_source_info().enabled]

    def add_source(self, source: RecipeSource) -> None:
        with self._lock:
            self._sources.append(source)
            self._sort_sources()
        logger.info("Recipe source added: %s (priority %d)", source.source_id, source.priority)

    def remove_source(self, source_id: str) -> bool:
        with self._lock:
            before = len(self._sources)
            self._sources = [s for s in self._sources if s.get_source_info().id != source_id]
            removed = len(self._sources) < before
        if removed:
            logger.info("Recipe source removed: %s", source_id)
        return removed

    def set_source_enabled(self, source_id: str, enabled: bool) -> bool:
        for source in self.sources:
            if source.source_id == source_id:
                with self._lock:
                    source.enabled = enabled
                    self._auto_disabled.discard(source_id)
                logger.info("Recipe source %s %s", source_id, "enabled" if enabled else "disabled")
                return True
        return False

    def lookup_recipe(self, recipe_id: str) -> RecipeLookup:
        """
        Look a recipe up in every enabled source, in priority order.

        Unlike get_recipe this never raises and tells a genuine miss apart
        from a miss where some source could not be queried.
        """
        errors: dict[str, str] = {}

        for source in self._enabled_sources():
            try:
                recipe = source.get_recipe(recipe_id)
            except Exception as error:
                logger.error("Error fetching recipe %s from %s: %s", recipe_id, source.source_name, error)
                errors[source.source_id] = str(error)
                continue

            if recipe is not None:
                return RecipeLookup(status=LookupStatus.FOUND, recipe=recipe, source_id=source.source_id, errors=errors)

        status = LookupStatus.UNAVAILABLE if errors else LookupStatus.NOT_FOUND
        return RecipeLookup(status=status, errors=errors)

    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        """
        Get a single recipe from the first source that has it.

        Raises:
            SourceUnavailableError: nothing was found and a source with the
                PROPAGATE policy (the authoritative store) failed
        """
        cache_key = _cache_key("get_recipe", recipe_id)
        cached = self._cache.get(cache_key)
        if cached is not MISSING:
            logger.debug("Cache hit: %s", cache_key)
            return cached

        failures: list[SourceUnavailableError] = []
        had_error = False
        for source in self._enabled_sources():
            try:
                recipe = source.get_recipe(recipe_id)
            except SourceUnavailableError as error:
                logger.error("Error fetching recipe %s from %s: %s", recipe_id, source.source_name, error)
                had_error = True
                if source.failure_policy == FailurePolicy.PROPAGATE:
                    failures.append(error)
                continue
            except Exception as error:
                logger.error("Error fetching recipe %s from %s: %s", recipe_id, source.source_name, error)
                had_error = True
                continue

            if recipe is not None:
                self._cache.set(cache_key, recipe)
                return recipe

        if failures:
            raise failures[0]

        if not had_error:
            self._cache.set(cache_key, None)
        return None

    def search(self, query: str, filters: Optional[RecipeFilters] = None) -> list[Recipe]:
        """
        Search recipes by free text across sources.

        Queries the highest priority source first and keeps going while fewer
        than `min_results_before_fallback` results were collected (or always,
        with the ALL strategy). Never raises.
        """
        filters = filters or RecipeFilters()
        return self._collect(
            "search",
            query,
            filters,
            lambda source: source.search(query, filters),
        )

    def get_recipes_by_ingredient(
        self,
        ingredient: str,
        filters: Optional[RecipeFilters] = None,
    ) -> list[Recipe]:
        filters = filters or RecipeFilters()
        return self._collect(
            "get_recipes_by_ingredient",
            ingredient,
            filters,
            lambda source: source.get_recipes_by_ingredient(ingredient, filters),
        )

    def get_recipes(self, product_name: str) -> list[Recipe]:
        """Deprecated: use get_recipes_by_ingredient."""
        logger.warning("get_recipes() is deprecated, use get_recipes_by_ingredient()")
        return self.get_recipes_by_ingredient(product_name, RecipeFilters(limit=3))

    def _collect(
        self,
        operation: str,
        text: str,
        filters: RecipeFilters,
        fetch: Callable[[RecipeSource], list[Recipe]],
    ) -> list[Recipe]:
        cache_key = _cache_key(operation, text, filters.to_dict())
        cached = self._cache.get(cache_key)
        if cached is not MISSING:
            logger.debug("Cache hit: %s", cache_key)
            return list(cached)

        collected: list[Recipe] = []
        for source in self._enabled_sources():
            try:
                logger.info("Querying %s: %s(%r)", source.source_name, operation, text)
                results = fetch(source) or []
            except Exception as error:
                logger.error("Error in %s from %s: %s", operation, source.source_name, error)
                continue

            collected.extend(results)
            logger.info("%s returned %d results", source.source_name, len(results))

            if (
                self.fallback_strategy == FallbackStrategy.PRIORITY
                and len(collected) >= self.min_results_before_fallback
            ):
                logger.info("Sufficient results (%d), stopping fallback", len(collected))
                break

        results = deduplicate_recipes(collected)[: filters.limit]
        self._cache.set(cache_key, results)
        return list(results)

    def get_sources(self) -> list[SourceStatus]:
        """Metadata and health of every source, disabled ones included."""
        statuses: list[SourceStatus] = []
        for source in self.sources:
            health = self._check_source(source)
            info = source.get_source_info()
            statuses.append(
                SourceStatus(
                    id=info.id,
                    name=info.name,
                    priority=info.priority,
                    enabled=info.enabled,
                    healthy=health.healthy,
                    message=health.message,
                )
            )
        return statuses

    def _check_source(self, source: RecipeSource) -> HealthStatus:
        try:
            health = source.health_check()
        except Exception as error:
            logger.error("Health check for %s raised: %s", source.source_name, error)
            health = HealthStatus(healthy=False, message=f"Health check failed: {error}")

        if self.disable_unhealthy_sources:
            self._apply_health(source, health)
        return health

    def _apply_health(self, source: RecipeSource, health: HealthStatus) -> None:
        with self._lock:
            if not health.healthy and source.enabled:
                source.enabled = False
                self._auto_disabled.add(source.source_id)
                logger.warning("Disabled unhealthy recipe source %s: %s", source.source_id, health.message)
            elif health.healthy and source.source_id in self._auto_disabled:
                source.enabled = True
                self._auto_disabled.discard(source.source_id)
                logger.info("Re-enabled recovered recipe source %s", source.source_id)

    def health_check(self) -> AggregateHealth:
        sources = self.get_sources()
        return AggregateHealth(healthy=all(status.healthy for status in sources), sources=sources)

    def clear_cache(self) -> None:
        """Clear the orchestrator cache and every source cache."""
        self._cache.clear()
        for source in self.sources:
            source.clear_cache()
        logger.info("All recipe caches cleared")

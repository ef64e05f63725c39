from __future__ import annotations

import logging
import re
from typing import Any, Optional

import httpx

from madmatch.app.domain.errors import AuthInvalidError, QuotaExceededError, SourceUnavailableError
from madmatch.app.domain.models import (
    Difficulty,
    FailurePolicy,
    HealthStatus,
    Language,
    Recipe,
    RecipeFilters,
    RecipeIngredient,
    SourceMetadata,
)
from madmatch.app.infra.cache import MISSING, TTLCache
from madmatch.app.infra.sources.base import RecipeSource
from madmatch.app.services.translation import translate_ingredient

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.spoonacular.com"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_CACHE_TTL_SECONDS = 24 * 60 * 60
DEFAULT_CACHE_MAX_ENTRIES = 1000
USER_AGENT = "MadMatch/1.4.0 (contact@madmatch.dk)"
ID_PREFIX = "spoonacular-"

PERCENTAGE_PATTERN = re.compile(r"\d+(?:[,.]\d+)?(?:\s*-\s*\d+(?:[,.]\d+)?)?\s*%")
QUALIFIER_PATTERN = re.compile(r"\b(?:økologisk|økologiske|dansk|danske|frisk|friske|frossen|frosne)\b", re.IGNORECASE)
SEPARATOR_PATTERN = re.compile(r"[,;-]")
WHITESPACE_PATTERN = re.compile(r"\s+")
SLUG_PATTERN = re.compile(r"\s+")

# Raised while mapping a 200 response whose shape is not what the API documents.
NORMALIZATION_ERRORS = (KeyError, TypeError, AttributeError, ValueError)


def clean_search_term(text: str) -> str:
    """
    Strip grocery-label noise from a product name before it is sent upstream.

    Best effort only: drops percentage figures ("3,5%", "8-12%") and
    qualifying adjectives ("økologisk", "dansk"), then keeps the text before
    the first separator.
    """
    cleaned = PERCENTAGE_PATTERN.sub(" ", text.lower())
    cleaned = QUALIFIER_PATTERN.sub(" ", cleaned)
    cleaned = SEPARATOR_PATTERN.split(cleaned)[0]
    return WHITESPACE_PATTERN.sub(" ", cleaned).strip()


def difficulty_from_ready_time(ready_in_minutes: object) -> Difficulty:
    if not isinstance(ready_in_minutes, (int, float)) or ready_in_minutes <= 0:
        return Difficulty.MEDIUM
    if ready_in_minutes < 30:
        return Difficulty.EASY
    if ready_in_minutes <= 60:
        return Difficulty.MEDIUM
    return Difficulty.HARD


def _format_quantity(ingredient: dict[str, Any]) -> str | None:
    amount = ingredient.get("amount")
    if not amount:
        return None
    unit = (ingredient.get("unit") or "").strip()
    return f"{amount:g} {unit}".strip() if isinstance(amount, (int, float)) else f"{amount} {unit}".strip()


def _to_ingredients(raw: list[dict[str, Any]]) -> list[RecipeIngredient]:
    return [
        RecipeIngredient(
            name=str(item.get("name") or item.get("original") or ""),
            quantity=_format_quantity(item),
            order=index,
        )
        for index, item in enumerate(raw, start=1)
    ]


def _to_instructions(data: dict[str, Any], detailed: bool) -> list[str]:
    blocks = data.get("analyzedInstructions") or []
    if detailed and blocks and blocks[0].get("steps"):
        return [str(step["step"]) for step in blocks[0]["steps"] if step.get("step")]
    if data.get("instructions"):
        return [str(data["instructions"])]
    return []


class SpoonacularRecipeSource(RecipeSource):
    """
    Adapter for the Spoonacular recipe API.

    Calls count against a daily quota, so every response is cached for a day.
    This source is a best-effort enrichment: timeouts, auth failures, quota
    exhaustion and 404s all come back as None/[] instead of raising.
    """

    failure_policy = FailurePolicy.SWALLOW

    def __init__(
        self,
        api_key: str | None,
        base_url: str = DEFAULT_BASE_URL,
        source_id: str = "spoonacular",
        source_name: str = "Spoonacular",
        priority: int = 2,
        enabled: bool = True,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        cache: TTLCache | None = None,
        http_client: httpx.Client | None = None,
    ):
        super().__init__(source_id, source_name, priority, enabled)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._cache = (
            cache if cache is not None else TTLCache(DEFAULT_CACHE_TTL_SECONDS, max_entries=DEFAULT_CACHE_MAX_ENTRIES)
        )
        self._http = http_client or httpx.Client(
            base_url=self.base_url,
            timeout=timeout_seconds,
            headers={"User-Agent": USER_AGENT},
        )

    def _to_recipe(self, data: dict[str, Any], detailed: bool = False) -> Recipe:
        title = str(data.get("title") or "")
        upstream_id = data["id"]

        if detailed and data.get("extendedIngredients"):
            ingredients = _to_ingredients(data["extendedIngredients"])
        else:
            ingredients = _to_ingredients(
                (data.get("usedIngredients") or []) + (data.get("missedIngredients") or [])
            )

        return Recipe(
            id=f"{ID_PREFIX}{upstream_id}",
            title=title,
            description=data.get("summary") or None,
            image_url=data.get("image") or None,
            cook_time_minutes=data.get("readyInMinutes") or None,
            servings=data.get("servings") or None,
            difficulty=difficulty_from_ready_time(data.get("readyInMinutes")),
            language=Language.EN,
            source_id=self.source_id,
            source_name=self.source_name,
            ingredients=ingredients,
            instructions=_to_instructions(data, detailed),
            tags=list(data.get("dishTypes") or []),
            nutrition_data=data.get("nutrition") or None,
            url=f"https://spoonacular.com/recipes/{SLUG_PATTERN.sub('-', title.lower())}-{upstream_id}",
        )

    def _request(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        if not self.api_key:
            raise AuthInvalidError(self.source_id, "Spoonacular API key not configured")

        query = {"apiKey": self.api_key, **(params or {})}
        try:
            response = self._http.get(endpoint, params=query)
        except httpx.TimeoutException as error:
            raise SourceUnavailableError(
                self.source_id, f"Timeout after {self.timeout_seconds}s calling {endpoint}"
            ) from error
        except httpx.HTTPError as error:
            raise SourceUnavailableError(self.source_id, f"Request to {endpoint} failed: {error}") from error

        if response.status_code == 404:
            return None
        if response.status_code == 402:
            raise QuotaExceededError(self.source_id)
        if response.status_code == 401:
            raise AuthInvalidError(self.source_id)
        if response.status_code >= 400:
            raise SourceUnavailableError(
                self.source_id, f"API error: {response.status_code} {response.reason_phrase}"
            )

        try:
            return response.json()
        except ValueError as error:
            raise SourceUnavailableError(self.source_id, f"Invalid JSON from {endpoint}") from error

    def _log_failure(self, operation: str, error: Exception) -> None:
        if isinstance(error, QuotaExceededError):
            logger.warning("Spoonacular quota exhausted during %s", operation)
        elif isinstance(error, AuthInvalidError):
            logger.error("Spoonacular authentication failed during %s: %s", operation, error.reason)
        else:
            logger.error("Spoonacular %s failed: %s", operation, error)

    def _excluded_by_filters(self, filters: RecipeFilters) -> bool:
        if filters.language is not None and filters.language != Language.EN:
            return True
        return filters.source_id is not None and filters.source_id != self.source_id

    @staticmethod
    def _apply_difficulty(recipes: list[Recipe], filters: RecipeFilters) -> list[Recipe]:
        if filters.difficulty is None:
            return recipes
        return [recipe for recipe in recipes if recipe.difficulty == filters.difficulty]

    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        upstream_id = recipe_id[len(ID_PREFIX):] if recipe_id.startswith(ID_PREFIX) else recipe_id
        if not upstream_id.isdigit():
            return None

        cache_key = f"recipe:{upstream_id}"
        cached = self._cache.get(cache_key)
        if cached is not MISSING:
            return cached

        try:
            data = self._request(f"/recipes/{upstream_id}/information", {"includeNutrition": "false"})
        except SourceUnavailableError as error:
            self._log_failure(f"get_recipe({recipe_id})", error)
            return None

        if not data:
            logger.info("Spoonacular recipe %s not found", upstream_id)
            self._cache.set(cache_key, None)
            return None

        try:
            recipe = self._to_recipe(data, detailed=True)
        except NORMALIZATION_ERRORS as error:
            logger.error("Unexpected Spoonacular payload for recipe %s: %r", upstream_id, error)
            return None

        self._cache.set(cache_key, recipe)
        return recipe

    def search(self, query: str, filters: Optional[RecipeFilters] = None) -> list[Recipe]:
        filters = filters or RecipeFilters()
        if self._excluded_by_filters(filters):
            return []

        term = clean_search_term(query)
        if not term:
            return []

        cache_key = f"search:{term}:{filters.cache_key()}"
        cached = self._cache.get(cache_key)
        if cached is not MISSING:
            return list(cached)

        params: dict[str, Any] = {
            "query": term,
            "number": filters.limit,
            "offset": filters.offset,
            "addRecipeInformation": "true",
        }
        if filters.max_time:
            params["maxReadyTime"] = filters.max_time

        try:
            data = self._request("/recipes/complexSearch", params)
        except SourceUnavailableError as error:
            self._log_failure(f"search({query!r})", error)
            return []

        try:
            results = (data or {}).get("results") or []
            recipes = self._apply_difficulty([self._to_recipe(item) for item in results], filters)
        except NORMALIZATION_ERRORS as error:
            logger.error("Unexpected Spoonacular search payload for %r: %r", query, error)
            return []

        self._cache.set(cache_key, recipes)
        return list(recipes)

    def get_recipes_by_ingredient(
        self,
        ingredient: str,
        filters: Optional[RecipeFilters] = None,
    ) -> list[Recipe]:
        filters = filters or RecipeFilters()
        if self._excluded_by_filters(filters):
            return []

        term = translate_ingredient(clean_search_term(ingredient))
        if not term:
            return []

        cache_key = f"ingredient:{term}:{filters.cache_key()}"
        cached = self._cache.get(cache_key)
        if cached is not MISSING:
            return list(cached)

        params = {
            "ingredients": term,
            "number": filters.limit,
            "ranking": 2,
            "ignorePantry": "true",
        }

        try:
            data = self._request("/recipes/findByIngredients", params)
        except SourceUnavailableError as error:
            self._log_failure(f"get_recipes_by_ingredient({ingredient!r})", error)
            return []

        try:
            recipes = [self._to_recipe(item) for item in data or []]
        except NORMALIZATION_ERRORS as error:
            logger.error("Unexpected Spoonacular ingredient payload for %r: %r", ingredient, error)
            return []

        if filters.max_time:
            recipes = [
                recipe for recipe in recipes
                if recipe.cook_time_minutes is None or recipe.cook_time_minutes <= filters.max_time
            ]
        recipes = self._apply_difficulty(recipes, filters)
        self._cache.set(cache_key, recipes)
        return list(recipes)

    def get_source_info(self) -> SourceMetadata:
        info = super().get_source_info()
        info.enabled = self.enabled and bool(self.api_key)
        return info

    def health_check(self) -> HealthStatus:
        if not self.api_key:
            return HealthStatus(healthy=False, message="Spoonacular API key not configured")

        try:
            self._request("/recipes/random", {"number": 1})
        except SourceUnavailableError as error:
            return HealthStatus(healthy=False, message=f"Spoonacular API unavailable: {error.reason}")

        return HealthStatus(healthy=True, message="Spoonacular API is accessible")

    def clear_cache(self) -> None:
        self._cache.clear()

    def close(self) -> None:
        self._http.close()

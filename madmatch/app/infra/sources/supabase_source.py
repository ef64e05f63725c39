from __future__ import annotations

import logging
import os
from typing import Any, Optional
from uuid import UUID

from supabase import Client, create_client

from madmatch.app.domain.errors import SourceUnavailableError
from madmatch.app.domain.models import (
    FailurePolicy,
    HealthStatus,
    Recipe,
    RecipeFilters,
    RecipeIngredient,
)
from madmatch.app.infra.sources.base import RecipeSource

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_ID = "database"
DEFAULT_SOURCE_NAME = "Database"
RECIPE_SELECT = "*, source:recipe_sources(*), ingredients:recipe_ingredients(*)"
SEARCH_FUNCTION = "search_recipes"
INGREDIENT_SEARCH_FUNCTION = "search_recipes_by_ingredient"


def _create_supabase_client() -> Client:
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY required")
    return create_client(url, key)


def _is_uuid(value: str) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


def _safe_int(value: object) -> int | None:
    return int(value) if value else None


def _safe_str(value: object) -> str | None:
    return str(value) if value else None


def _split_instructions(blob: str | None) -> list[str] | None:
    if not blob:
        return None
    return [line.strip() for line in blob.split("\n") if line.strip()]


def _row_to_ingredients(rows: list[dict[str, Any]] | None) -> list[RecipeIngredient]:
    ordered = sorted(rows or [], key=lambda row: int(row["order"]))
    return [
        RecipeIngredient(
            name=str(row["ingredient_name"]),
            quantity=_safe_str(row.get("quantity")),
            order=int(row["order"]),
        )
        for row in ordered
    ]


def _build_recipe_url(row: dict[str, Any]) -> str:
    source = row.get("source") or {}
    slug_or_id = row.get("slug") or row.get("external_id") or row["id"]
    if source.get("base_url") and row.get("external_id"):
        return f"{source['base_url']}{slug_or_id}"
    return f"/recipes/{row.get('slug') or row['id']}"


def _search_params(text: str, filters: RecipeFilters) -> dict[str, Any]:
    return {
        "query_text": text,
        "language_filter": filters.language.value if filters.language else None,
        "difficulty_filter": filters.difficulty.value if filters.difficulty else None,
        "max_time_filter": filters.max_time,
        "source_filter": filters.source_id,
        "result_limit": filters.limit,
        "result_offset": filters.offset,
    }


class SupabaseRecipeSource(RecipeSource):
    """
    Recipe source backed by the Postgres recipe tables.

    Ranked full-text search runs inside SQL functions (see supabase/migrations)
    which return ids ordered by text relevance, then newest first. The ids are
    hydrated with their source and ingredient rows in a second round trip.

    This is the authoritative store: read failures are raised as
    SourceUnavailableError instead of being hidden.
    """

    TABLE_NAME = "recipes"
    failure_policy = FailurePolicy.PROPAGATE

    def __init__(
        self,
        client: Client | None = None,
        source_id: str = DEFAULT_SOURCE_ID,
        source_name: str = DEFAULT_SOURCE_NAME,
        priority: int = 1,
        enabled: bool = True,
    ):
        super().__init__(source_id, source_name, priority, enabled)
        self._client = client or _create_supabase_client()
        logger.info("SupabaseRecipeSource initialized: id=%s, priority=%d", source_id, priority)

    def _row_to_recipe(self, row: dict[str, Any]) -> Recipe:
        source = row.get("source") or {}
        return Recipe(
            id=str(row["id"]),
            title=str(row["title"]),
            description=_safe_str(row.get("description")),
            image_url=_safe_str(row.get("image_url")),
            cook_time_minutes=_safe_int(row.get("cook_time_minutes")) or _safe_int(row.get("total_time_minutes")),
            servings=_safe_int(row.get("servings")),
            difficulty=row.get("difficulty") or None,
            language=row.get("language") or "da",
            source_id=str(source.get("id") or row.get("source_id") or self.source_id),
            source_name=str(source.get("name") or self.source_name),
            ingredients=_row_to_ingredients(row.get("ingredients")),
            instructions=_split_instructions(row.get("instructions")),
            tags=[],
            url=_build_recipe_url(row),
        )

    def _find_one(self, column: str, value: str) -> dict[str, Any] | None:
        result = (
            self._client.table(self.TABLE_NAME)
            .select(RECIPE_SELECT)
            .eq(column, value)
            .limit(1)
            .execute()
        )
        rows = result.data or []
        return rows[0] if rows else None

    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        try:
            row = self._find_one("id", recipe_id) if _is_uuid(recipe_id) else None
            if row is None:
                row = self._find_one("slug", recipe_id)
        except Exception as error:
            logger.error("Error fetching recipe %s: %s", recipe_id, error)
            raise SourceUnavailableError(self.source_id, f"Failed to fetch recipe: {error}") from error

        return self._row_to_recipe(row) if row else None

    def search(self, query: str, filters: Optional[RecipeFilters] = None) -> list[Recipe]:
        filters = filters or RecipeFilters()
        try:
            return self._ranked_search(SEARCH_FUNCTION, query, filters)
        except Exception as error:
            logger.error("Search error for %r: %s", query, error)
            raise SourceUnavailableError(self.source_id, f"Failed to search recipes: {error}") from error

    def get_recipes_by_ingredient(
        self,
        ingredient: str,
        filters: Optional[RecipeFilters] = None,
    ) -> list[Recipe]:
        filters = filters or RecipeFilters()
        try:
            return self._ranked_search(INGREDIENT_SEARCH_FUNCTION, ingredient, filters)
        except Exception as error:
            logger.error("Ingredient search error for %r: %s", ingredient, error)
            raise SourceUnavailableError(
                self.source_id, f"Failed to search by ingredient: {error}"
            ) from error

    def _ranked_search(self, function: str, text: str, filters: RecipeFilters) -> list[Recipe]:
        ranked = self._client.rpc(function, _search_params(text, filters)).execute()
        ranked_ids = [str(row["id"]) for row in ranked.data or []]
        if not ranked_ids:
            return []

        hydrated = (
            self._client.table(self.TABLE_NAME)
            .select(RECIPE_SELECT)
            .in_("id", ranked_ids)
            .execute()
        )
        rows_by_id = {str(row["id"]): row for row in hydrated.data or []}

        # Rows deleted between the two round trips are skipped.
        return [self._row_to_recipe(rows_by_id[recipe_id]) for recipe_id in ranked_ids if recipe_id in rows_by_id]

    def health_check(self) -> HealthStatus:
        try:
            result = self._client.table(self.TABLE_NAME).select("id", count="exact").limit(1).execute()
            return HealthStatus(
                healthy=True,
                message=f"Database source healthy. {result.count or 0} recipes available.",
            )
        except Exception as error:
            logger.error("Database health check failed: %s", error)
            return HealthStatus(healthy=False, message=f"Database source unavailable: {error}")

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import uuid4

from supabase import Client

from madmatch.app.domain.errors import RecipeWriteError
from madmatch.app.domain.models import Difficulty
from madmatch.app.services.persist_models import IngredientRow, RecipeRow, ScrapedRecipe
from madmatch.app.services.slugify import slugify, unique_slug

logger = logging.getLogger(__name__)

RECIPES_TABLE = "recipes"
INGREDIENTS_TABLE = "recipe_ingredients"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def infer_difficulty(total_minutes: int | None) -> Difficulty | None:
    if not total_minutes:
        return None
    if total_minutes <= 30:
        return Difficulty.EASY
    if total_minutes <= 60:
        return Difficulty.MEDIUM
    return Difficulty.HARD


def _total_minutes(recipe: ScrapedRecipe) -> int | None:
    if recipe.total_time_minutes:
        return recipe.total_time_minutes
    parts = [value for value in (recipe.prep_time_minutes, recipe.cook_time_minutes) if value]
    return sum(parts) if parts else None


class RecipeWriter:
    """
    Writes scraped recipes into the persisted store.

    Each (title, source_id) pair is stored once; re-scraping the same recipe
    is a no-op.
    """

    def __init__(self, client: Client, source_id: str):
        self._client = client
        self.source_id = source_id

    def exists(self, title: str) -> bool:
        result = (
            self._client.table(RECIPES_TABLE)
            .select("id")
            .eq("title", title)
            .eq("source_id", self.source_id)
            .limit(1)
            .execute()
        )
        return bool(result.data)

    def _slug_taken(self, slug: str) -> bool:
        result = self._client.table(RECIPES_TABLE).select("id").eq("slug", slug).limit(1).execute()
        return bool(result.data)

    def _pick_slug(self, title: str) -> str:
        base = slugify(title)
        return unique_slug(base) if self._slug_taken(base) else base

    def build_rows(self, recipe: ScrapedRecipe, slug: str) -> tuple[RecipeRow, list[IngredientRow]]:
        now = _now_iso()
        total = _total_minutes(recipe)
        recipe_row = RecipeRow(
            id=str(uuid4()),
            source_id=self.source_id,
            external_id=recipe.external_id,
            title=recipe.title.strip(),
            slug=slug,
            description=recipe.description,
            image_url=recipe.image_url,
            prep_time_minutes=recipe.prep_time_minutes,
            cook_time_minutes=recipe.cook_time_minutes,
            total_time_minutes=total,
            servings=recipe.servings,
            difficulty=recipe.difficulty or infer_difficulty(total),
            instructions="\n".join(step.strip() for step in recipe.instructions if step.strip()) or None,
            language=recipe.language,
            created_at=now,
            updated_at=now,
        )
        ingredient_rows = [
            IngredientRow(
                id=str(uuid4()),
                recipe_id=recipe_row.id,
                ingredient_name=ingredient.name,
                quantity=ingredient.quantity,
                order=ingredient.order,
                created_at=now,
            )
            for ingredient in recipe.ingredients
        ]
        return recipe_row, ingredient_rows

    def save(self, recipe: ScrapedRecipe) -> bool:
        """
        Persist a scraped recipe with its ingredients.

        Returns:
            True if inserted, False if the recipe already exists for this source

        Raises:
            RecipeWriteError: If the store rejects the rows
        """
        title = recipe.title.strip()
        try:
            if self.exists(title):
                logger.debug("Duplicate recipe skipped: %s", title)
                return False
            recipe_row, ingredient_rows = self.build_rows(recipe, self._pick_slug(title))
            self._client.table(RECIPES_TABLE).insert(recipe_row.model_dump(mode="json")).execute()
        except Exception as error:
            logger.error("Failed to save recipe %r: %s", title, error)
            raise RecipeWriteError(title, str(error)) from error

        if ingredient_rows:
            try:
                self._client.table(INGREDIENTS_TABLE).insert(
                    [row.model_dump(mode="json") for row in ingredient_rows]
                ).execute()
            except Exception as error:
                logger.error("Failed to save ingredients for %r, removing recipe row: %s", title, error)
                self._client.table(RECIPES_TABLE).delete().eq("id", recipe_row.id).execute()
                raise RecipeWriteError(title, f"ingredients rejected: {error}") from error

        logger.info("Saved recipe %r (%d ingredients)", title, len(ingredient_rows))
        return True

    def save_many(self, recipes: list[ScrapedRecipe]) -> int:
        """Save a batch, returning how many were inserted. Stops at the first write error."""
        return sum(1 for recipe in recipes if self.save(recipe))

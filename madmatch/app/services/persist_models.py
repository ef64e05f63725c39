# madmatch/app/services/persist_models.py
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from madmatch.app.domain.models import Difficulty, Language


class ScrapedIngredient(BaseModel):
    name: str = Field(min_length=1)
    quantity: Optional[str] = None
    order: int = Field(ge=0)


class ScrapedRecipe(BaseModel):
    """A recipe as emitted by a scraper, before it is written to the store."""
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    image_url: Optional[str] = None
    prep_time_minutes: Optional[int] = Field(default=None, ge=0)
    cook_time_minutes: Optional[int] = Field(default=None, ge=0)
    total_time_minutes: Optional[int] = Field(default=None, ge=0)
    servings: Optional[int] = Field(default=None, ge=0)
    difficulty: Optional[Difficulty] = None
    language: Language = Language.DA
    ingredients: list[ScrapedIngredient] = Field(default_factory=list)
    instructions: list[str] = Field(default_factory=list)
    external_id: Optional[str] = None

    @field_validator("ingredients")
    @classmethod
    def _orders_ascending(cls, ingredients: list[ScrapedIngredient]) -> list[ScrapedIngredient]:
        orders = [ingredient.order for ingredient in ingredients]
        if any(later <= earlier for earlier, later in zip(orders, orders[1:])):
            raise ValueError(f"ingredient order must be unique and ascending: {orders}")
        return ingredients


class RecipeRow(BaseModel):
    id: str
    source_id: str
    external_id: Optional[str] = None
    title: str
    slug: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    total_time_minutes: Optional[int] = None
    servings: Optional[int] = None
    difficulty: Optional[Difficulty] = None
    instructions: Optional[str] = None
    language: Language
    created_at: str
    updated_at: str


class IngredientRow(BaseModel):
    id: str
    recipe_id: str
    ingredient_name: str
    quantity: Optional[str] = None
    order: int
    created_at: str

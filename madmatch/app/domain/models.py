# madmatch/app/domain/models.py
"""
Domain models for the recipe source layer.
These are pure data structures with no infrastructure dependencies.
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

DEFAULT_LIMIT = 10
MAX_LIMIT = 50
DEFAULT_OFFSET = 0


class Difficulty(str, Enum):
    """Difficulty levels shared by every source."""
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class Language(str, Enum):
    """Languages a recipe can be written in."""
    DA = "da"
    EN = "en"


class FallbackStrategy(str, Enum):
    """How the orchestrator walks its sources for list operations."""
    PRIORITY = "priority"
    ALL = "all"


class FailurePolicy(str, Enum):
    """What a source does with its own read failures."""
    PROPAGATE = "propagate"
    SWALLOW = "swallow"


class LookupStatus(str, Enum):
    FOUND = "FOUND"
    NOT_FOUND = "NOT_FOUND"
    UNAVAILABLE = "UNAVAILABLE"


@dataclass
class RecipeIngredient:
    """One ingredient line; `order` defines the display sequence."""
    name: str
    order: int
    quantity: Optional[str] = None


@dataclass
class Recipe:
    """
    Standardized recipe shape every source must produce.

    `id` is unique within the namespace of `source_id` only.
    """
    id: str
    title: str
    language: Language
    source_id: str
    source_name: str
    ingredients: list[RecipeIngredient] = field(default_factory=list)
    description: Optional[str] = None
    image_url: Optional[str] = None
    cook_time_minutes: Optional[int] = None
    servings: Optional[int] = None
    difficulty: Optional[Difficulty] = None
    instructions: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    nutrition_data: Optional[dict[str, Any]] = None
    url: Optional[str] = None

    def __post_init__(self) -> None:
        self.language = Language(self.language)
        if self.difficulty is not None:
            self.difficulty = Difficulty(self.difficulty)

        orders = [ingredient.order for ingredient in self.ingredients]
        if any(later <= earlier for earlier, later in zip(orders, orders[1:])):
            raise ValueError(
                f"Ingredient order must be unique and ascending for recipe {self.id}: {orders}"
            )

    @property
    def dedup_key(self) -> str:
        """Case-folded title used to spot the same recipe across sources."""
        return self.title.strip().casefold()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["language"] = self.language.value
        data["difficulty"] = self.difficulty.value if self.difficulty else None
        return data


@dataclass
class RecipeFilters:
    """
    Optional predicates for list operations.

    `limit` is clamped to MAX_LIMIT; values below 1 fall back to DEFAULT_LIMIT.
    A negative `offset` becomes DEFAULT_OFFSET.
    """
    language: Optional[Language] = None
    difficulty: Optional[Difficulty] = None
    max_time: Optional[int] = None
    source_id: Optional[str] = None
    limit: int = DEFAULT_LIMIT
    offset: int = DEFAULT_OFFSET

    def __post_init__(self) -> None:
        if self.language is not None:
            self.language = Language(self.language)
        if self.difficulty is not None:
            self.difficulty = Difficulty(self.difficulty)

        limit = self.limit if self.limit is not None else DEFAULT_LIMIT
        self.limit = min(limit, MAX_LIMIT) if limit >= 1 else DEFAULT_LIMIT
        offset = self.offset if self.offset is not None else DEFAULT_OFFSET
        self.offset = max(offset, DEFAULT_OFFSET)

    def to_dict(self) -> dict[str, Any]:
        return {
            "language": self.language.value if self.language else None,
            "difficulty": self.difficulty.value if self.difficulty else None,
            "max_time": self.max_time,
            "source_id": self.source_id,
            "limit": self.limit,
            "offset": self.offset,
        }

    def cache_key(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


@dataclass
class SourceMetadata:
    id: str
    name: str
    priority: int
    enabled: bool


@dataclass
class HealthStatus:
    healthy: bool
    message: str


@dataclass
class SourceStatus:
    """Metadata of one source together with its latest health report."""
    id: str
    name: str
    priority: int
    enabled: bool
    healthy: bool
    message: str


@dataclass
class AggregateHealth:
    healthy: bool
    sources: list[SourceStatus]


@dataclass
class RecipeLookup:
    """
    Three-state result of an id lookup across sources.

    UNAVAILABLE means nothing was found and at least one source failed,
    so the recipe may exist in a source that could not be reached.
    """
    status: LookupStatus
    recipe: Optional[Recipe] = None
    source_id: Optional[str] = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.FOUND

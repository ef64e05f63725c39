# madmatch/app/infra/sources/base.py
"""
Abstract base class for recipe sources.
This interface allows the orchestrator to treat every backend the same way.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar, Optional

from madmatch.app.domain.models import (
    FailurePolicy,
    HealthStatus,
    Recipe,
    RecipeFilters,
    SourceMetadata,
)


class RecipeSource(ABC):
    """
    Abstract interface for recipe lookups.

    Implementations:
    - SupabaseRecipeSource: persisted recipes, ranked full-text search (PROPAGATE)
    - SpoonacularRecipeSource: quota-limited third-party API (SWALLOW)

    `failure_policy` documents what an implementation does when its backend
    fails: PROPAGATE raises SourceUnavailableError, SWALLOW returns None/[].
    """

    failure_policy: ClassVar[FailurePolicy] = FailurePolicy.PROPAGATE

    def __init__(
        self,
        source_id: str,
        source_name: str,
        priority: int,
        enabled: bool = True,
    ):
        self.source_id = source_id
        self.source_name = source_name
        self.priority = priority
        self.enabled = enabled

    @abstractmethod
    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        """
        Get a single recipe by identifier.

        Args:
            recipe_id: Identifier in this source's namespace

        Returns:
            The recipe, or None if this source does not have it
        """
        pass

    @abstractmethod
    def search(self, query: str, filters: Optional[RecipeFilters] = None) -> list[Recipe]:
        """
        Search recipes by free text.

        Args:
            query: Search text (e.g. "kylling", "pasta")
            filters: Optional predicates, combined with AND

        Returns:
            Matching recipes in this source's ranking order
        """
        pass

    @abstractmethod
    def get_recipes_by_ingredient(
        self,
        ingredient: str,
        filters: Optional[RecipeFilters] = None,
    ) -> list[Recipe]:
        """
        Get recipes that use an ingredient.

        Args:
            ingredient: Ingredient or product name (e.g. "hakket oksekød")
            filters: Optional predicates, combined with AND

        Returns:
            Matching recipes in this source's ranking order
        """
        pass

    def get_source_info(self) -> SourceMetadata:
        return SourceMetadata(
            id=self.source_id,
            name=self.source_name,
            priority=self.priority,
            enabled=self.enabled,
        )

    @abstractmethod
    def health_check(self) -> HealthStatus:
        """
        Verify the backend is reachable. Must not raise.
        """
        pass

    def clear_cache(self) -> None:
        """Drop any cached responses. Sources without a cache do nothing."""
        return None

from __future__ import annotations

from typing import Optional

import pytest

from madmatch.app.domain.errors import QuotaExceededError, SourceUnavailableError
from madmatch.app.domain.models import (
    FailurePolicy,
    FallbackStrategy,
    HealthStatus,
    Language,
    LookupStatus,
    Recipe,
    RecipeFilters,
)
from madmatch.app.infra.cache import TTLCache
from madmatch.app.infra.sources.base import RecipeSource
from madmatch.app.services.recipe_service import RecipeService, deduplicate_recipes


def make_recipe(recipe_id: str, title: str, source_id: str = "database", source_name: str = "Database") -> Recipe:
    return Recipe(
        id=recipe_id,
        title=title,
        language=Language.DA,
        source_id=source_id,
        source_name=source_name,
    )


class StubSource(RecipeSource):
    """Recording source returning canned results."""

    def __init__(
        self,
        source_id: str,
        priority: int,
        recipes: Optional[list[Recipe]] = None,
        failure_policy: FailurePolicy = FailurePolicy.PROPAGATE,
        error: Optional[Exception] = None,
        healthy: bool = True,
    ):
        super().__init__(source_id, source_id.title(), priority)
        self.recipes = recipes or []
        self.failure_policy = failure_policy
        self.error = error
        self.healthy = healthy
        self.calls: list[tuple[str, str]] = []
        self.cache_cleared = 0

    def _record(self, operation: str, argument: str) -> None:
        self.calls.append((operation, argument))
        if self.error is not None:
            raise self.error

    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        self._record("get_recipe", recipe_id)
        return next((recipe for recipe in self.recipes if recipe.id == recipe_id), None)

    def search(self, query: str, filters: Optional[RecipeFilters] = None) -> list[Recipe]:
        self._record("search", query)
        return list(self.recipes)

    def get_recipes_by_ingredient(self, ingredient: str, filters: Optional[RecipeFilters] = None) -> list[Recipe]:
        self._record("get_recipes_by_ingredient", ingredient)
        return list(self.recipes)

    def health_check(self) -> HealthStatus:
        if self.healthy:
            return HealthStatus(healthy=True, message=f"{self.source_name} ok")
        return HealthStatus(healthy=False, message=f"{self.source_name} down")

    def clear_cache(self) -> None:
        self.cache_cleared += 1


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def store_with(*titles: str) -> StubSource:
    return StubSource(
        "database",
        priority=1,
        recipes=[make_recipe(f"db-{i}", title) for i, title in enumerate(titles, start=1)],
    )


def api_with(*titles: str) -> StubSource:
    return StubSource(
        "spoonacular",
        priority=2,
        recipes=[
            make_recipe(f"spoonacular-{i}", title, "spoonacular", "Spoonacular")
            for i, title in enumerate(titles, start=1)
        ],
        failure_policy=FailurePolicy.SWALLOW,
    )


class TestFallback:
    def test_falls_back_when_store_has_too_few_results(self) -> None:
        store = store_with("Pasta carbonara", "Pasta pesto")
        api = api_with("Pasta primavera", "Pasta alfredo")
        service = RecipeService([store, api], min_results_before_fallback=3)

        results = service.search("pasta")

        assert [r.title for r in results] == ["Pasta carbonara", "Pasta pesto", "Pasta primavera", "Pasta alfredo"]

    def test_skips_fallback_when_store_has_enough(self) -> None:
        store = store_with("Kylling 1", "Kylling 2", "Kylling 3", "Kylling 4", "Kylling 5")
        api = api_with("Chicken curry")
        service = RecipeService([store, api], min_results_before_fallback=3)

        results = service.search("chicken")

        assert len(results) == 5
        assert api.calls == []

    def test_threshold_counts_accumulated_results(self) -> None:
        first = StubSource("first", 1, [make_recipe("a", "A")])
        second = StubSource("second", 2, [make_recipe("b", "B"), make_recipe("c", "C")])
        third = StubSource("third", 3, [make_recipe("d", "D")])
        service = RecipeService([first, second, third], min_results_before_fallback=3)

        results = service.search("x")

        assert [r.title for r in results] == ["A", "B", "C"]
        assert third.calls == []

    def test_all_strategy_queries_every_source_grouped_by_priority(self) -> None:
        store = store_with("Kylling 1", "Kylling 2", "Kylling 3")
        api = api_with("Chicken curry")
        service = RecipeService([api, store], fallback_strategy=FallbackStrategy.ALL)

        results = service.search("kylling")

        assert [r.source_id for r in results] == ["database"] * 3 + ["spoonacular"]
        assert api.calls == [("search", "kylling")]

    def test_result_length_respects_limit(self) -> None:
        store = store_with(*[f"Ret {i}" for i in range(8)])
        service = RecipeService([store])

        assert len(service.search("ret", RecipeFilters(limit=4))) == 4
        assert len(service.search("ret", RecipeFilters(limit=500))) == 8

    def test_ingredient_search_uses_same_fallback(self) -> None:
        store = store_with("Kylling i karry")
        api = api_with("Chicken soup")
        service = RecipeService([store, api])

        results = service.get_recipes_by_ingredient("kylling")

        assert [r.title for r in results] == ["Kylling i karry", "Chicken soup"]
        assert api.calls == [("get_recipes_by_ingredient", "kylling")]


class TestDeduplication:
    def test_case_insensitive_title_keeps_first(self) -> None:
        store = store_with("Pasta Carbonara")
        api = api_with("pasta carbonara", "Lasagne")
        service = RecipeService([store, api])

        results = service.search("pasta")

        assert [(r.title, r.source_id) for r in results] == [
            ("Pasta Carbonara", "database"),
            ("Lasagne", "spoonacular"),
        ]

    def test_deduplicate_is_idempotent(self) -> None:
        recipes = [make_recipe("1", "Suppe"), make_recipe("2", "SUPPE"), make_recipe("3", "Salat")]

        once = deduplicate_recipes(recipes)

        assert deduplicate_recipes(once) == once
        assert [r.id for r in once] == ["1", "3"]


class TestErrorIsolation:
    def test_failing_store_does_not_break_search(self) -> None:
        store = StubSource("database", 1, error=SourceUnavailableError("database", "connection refused"))
        api = api_with("Pasta primavera")
        service = RecipeService([store, api])

        results = service.search("x")

        assert [r.title for r in results] == ["Pasta primavera"]

    def test_unexpected_error_is_isolated(self) -> None:
        store = StubSource("database", 1, error=RuntimeError("boom"))
        service = RecipeService([store])

        assert service.search("x") == []

    def test_get_recipe_raises_when_authoritative_source_fails(self) -> None:
        store = StubSource("database", 1, error=SourceUnavailableError("database", "timeout"))
        api = api_with()
        service = RecipeService([store, api])

        with pytest.raises(SourceUnavailableError) as exc_info:
            service.get_recipe("db-1")

        assert exc_info.value.source_id == "database"
        assert api.calls == [("get_recipe", "db-1")]

    def test_get_recipe_prefers_hit_over_failure(self) -> None:
        store = StubSource("database", 1, error=SourceUnavailableError("database", "timeout"))
        api = api_with("Pasta primavera")
        service = RecipeService([store, api])

        recipe = service.get_recipe("spoonacular-1")

        assert recipe.source_name == "Spoonacular"

    def test_swallowing_source_failure_reads_as_missing(self) -> None:
        api = StubSource(
            "spoonacular", 2, failure_policy=FailurePolicy.SWALLOW, error=QuotaExceededError("spoonacular")
        )
        service = RecipeService([api])

        assert service.get_recipe("spoonacular-1") is None


class TestGetRecipe:
    def test_first_hit_wins(self) -> None:
        store = store_with("Kylling i karry")
        api = api_with("Chicken curry")
        service = RecipeService([store, api])

        recipe = service.get_recipe("db-1")

        assert recipe.source_name == "Database"
        assert api.calls == []

    def test_missing_everywhere_queries_in_priority_order(self) -> None:
        calls: list[str] = []
        store = store_with()
        api = api_with()
        store.get_recipe = lambda recipe_id: calls.append("database")
        api.get_recipe = lambda recipe_id: calls.append("spoonacular")
        service = RecipeService([api, store])

        assert service.get_recipe("missing") is None
        assert calls == ["database", "spoonacular"]

    def test_disabled_source_is_skipped(self) -> None:
        store = store_with("Kylling i karry")
        api = api_with()
        service = RecipeService([store, api])

        service.set_source_enabled("database", False)

        assert service.get_recipe("db-1") is None
        assert store.calls == []

    def test_not_found_is_cached(self) -> None:
        store = store_with()
        service = RecipeService([store])

        service.get_recipe("missing")
        service.get_recipe("missing")

        assert store.calls == [("get_recipe", "missing")]

    def test_miss_after_source_failure_is_not_cached(self) -> None:
        api = StubSource(
            "spoonacular", 2, failure_policy=FailurePolicy.SWALLOW, error=RuntimeError("flaky")
        )
        service = RecipeService([api])

        service.get_recipe("missing")
        api.error = None
        service.get_recipe("missing")

        assert len(api.calls) == 2


class TestLookupRecipe:
    def test_found(self) -> None:
        service = RecipeService([store_with("Kylling i karry")])

        lookup = service.lookup_recipe("db-1")

        assert lookup.status == LookupStatus.FOUND
        assert lookup.found is True
        assert lookup.source_id == "database"
        assert lookup.recipe.title == "Kylling i karry"

    def test_not_found(self) -> None:
        lookup = RecipeService([store_with(), api_with()]).lookup_recipe("missing")

        assert lookup.status == LookupStatus.NOT_FOUND
        assert lookup.recipe is None
        assert lookup.errors == {}

    def test_unavailable_when_a_source_failed(self) -> None:
        store = StubSource("database", 1, error=SourceUnavailableError("database", "connection refused"))

        lookup = RecipeService([store, api_with()]).lookup_recipe("missing")

        assert lookup.status == LookupStatus.UNAVAILABLE
        assert "connection refused" in lookup.errors["database"]


class TestCaching:
    def test_injected_cache_is_used(self) -> None:
        cache = TTLCache(ttl_seconds=5)

        service = RecipeService([store_with("Pasta")], cache=cache)
        service.search("pasta")

        assert service._cache is cache
        assert len(cache) == 1

    def test_repeat_search_served_from_cache(self) -> None:
        store = store_with("Pasta")
        api = api_with("Pasta bake")
        service = RecipeService([store, api])

        first = service.search("pasta")
        second = service.search("pasta")

        assert first == second
        assert len(store.calls) == 1
        assert len(api.calls) == 1

    def test_different_filters_use_different_entries(self) -> None:
        store = store_with("Pasta")
        service = RecipeService([store])

        service.search("pasta")
        service.search("pasta", RecipeFilters(language="da"))

        assert len(store.calls) == 2

    def test_cached_list_is_a_copy(self) -> None:
        service = RecipeService([store_with("Pasta")])

        service.search("pasta").clear()

        assert len(service.search("pasta")) == 1

    def test_expired_entry_is_refetched(self) -> None:
        clock = FakeClock()
        store = store_with("Pasta")
        service = RecipeService([store], cache=TTLCache(ttl_seconds=600, clock=clock))

        service.search("pasta")
        clock.now += 601
        service.search("pasta")

        assert len(store.calls) == 2

    def test_clear_cache_clears_sources_too(self) -> None:
        store = store_with("Pasta")
        api = api_with()
        service = RecipeService([store, api])
        service.search("pasta")

        service.clear_cache()
        service.search("pasta")

        assert len(store.calls) == 2
        assert store.cache_cleared == 1
        assert api.cache_cleared == 1


class TestSourceManagement:
    def test_sources_sorted_by_priority(self) -> None:
        service = RecipeService([api_with(), store_with()])

        assert [s.source_id for s in service.sources] == ["database", "spoonacular"]

    def test_add_source_keeps_order(self) -> None:
        service = RecipeService([api_with()])

        service.add_source(store_with())

        assert [s.source_id for s in service.sources] == ["database", "spoonacular"]

    def test_remove_source(self) -> None:
        service = RecipeService([store_with(), api_with()])

        assert service.remove_source("spoonacular") is True
        assert service.remove_source("spoonacular") is False
        assert [s.source_id for s in service.sources] == ["database"]

    def test_set_source_enabled_unknown_id(self) -> None:
        service = RecipeService([store_with()])

        assert service.set_source_enabled("nope", False) is False

    def test_deprecated_get_recipes_limits_to_three(self, caplog) -> None:
        store = store_with("A", "B", "C", "D", "E")
        service = RecipeService([store])

        with caplog.at_level("WARNING"):
            results = service.get_recipes("kylling")

        assert len(results) == 3
        assert store.calls == [("get_recipes_by_ingredient", "kylling")]
        assert "deprecated" in caplog.text


class TestHealth:
    def test_get_sources_includes_disabled(self) -> None:
        store = store_with()
        api = api_with()
        api.enabled = False
        service = RecipeService([store, api])

        statuses = service.get_sources()

        assert [(s.id, s.enabled, s.healthy) for s in statuses] == [
            ("database", True, True),
            ("spoonacular", False, True),
        ]

    def test_aggregate_health_is_and_of_sources(self) -> None:
        store = store_with()
        api = api_with()
        api.healthy = False
        service = RecipeService([store, api])

        health = service.health_check()

        assert health.healthy is False
        assert [s.message for s in health.sources] == ["Database ok", "Spoonacular down"]

    def test_raising_health_check_reported_unhealthy(self) -> None:
        store = store_with()

        def broken_health_check() -> HealthStatus:
            raise RuntimeError("boom")

        store.health_check = broken_health_check
        service = RecipeService([store])

        status = service.get_sources()[0]

        assert status.healthy is False
        assert "boom" in status.message

    def test_unhealthy_source_stays_enabled_by_default(self) -> None:
        api = api_with()
        api.healthy = False
        service = RecipeService([api])

        service.health_check()

        assert api.enabled is True

    def test_auto_disable_and_recover(self) -> None:
        store = store_with("Kylling")
        store.healthy = False
        service = RecipeService([store], disable_unhealthy_sources=True)

        service.health_check()
        assert store.enabled is False
        assert service.search("kylling") == []

        store.healthy = True
        service.health_check()
        assert store.enabled is True

    def test_manually_disabled_source_not_re_enabled(self) -> None:
        store = store_with()
        service = RecipeService([store], disable_unhealthy_sources=True)

        service.set_source_enabled("database", False)
        service.health_check()

        assert store.enabled is False


class RecordingLock:
    def __init__(self) -> None:
        self.depth = 0

    def __enter__(self) -> "RecordingLock":
        self.depth += 1
        return self

    def __exit__(self, *exc_info) -> None:
        self.depth -= 1


class LockCheckingSource(StubSource):
    """Records whether the service lock was held whenever `enabled` changed."""

    def __init__(self, lock: RecordingLock, **kwargs):
        self.lock = lock
        self.writes_under_lock: list[bool] = []
        super().__init__("database", 1, **kwargs)
        self.writes_under_lock.clear()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self.writes_under_lock.append(self.lock.depth > 0)
        self._enabled = value


class TestSourceStateLocking:
    def test_enable_toggle_holds_lock(self) -> None:
        lock = RecordingLock()
        source = LockCheckingSource(lock)
        service = RecipeService([source])
        service._lock = lock

        service.set_source_enabled("database", False)
        service.set_source_enabled("database", True)

        assert source.writes_under_lock == [True, True]

    def test_auto_disable_holds_lock(self) -> None:
        lock = RecordingLock()
        source = LockCheckingSource(lock, healthy=False)
        service = RecipeService([source], disable_unhealthy_sources=True)
        service._lock = lock

        service.health_check()
        source.healthy = True
        service.health_check()

        assert source.writes_under_lock == [True, True]
        assert source.enabled is True

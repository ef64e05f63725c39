from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from typing import Any, Optional, Sequence

from madmatch.app.config import settings
from madmatch.app.deps import get_recipe_service
from madmatch.app.domain.errors import SourceUnavailableError
from madmatch.app.domain.models import Difficulty, Language, RecipeFilters
from madmatch.app.services.recipe_service import RecipeService


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _filters_from_args(args: argparse.Namespace) -> RecipeFilters:
    return RecipeFilters(
        language=args.language,
        difficulty=args.difficulty,
        max_time=args.max_time,
        source_id=args.source,
        limit=args.limit,
        offset=args.offset,
    )


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--language", choices=[language.value for language in Language])
    parser.add_argument("--difficulty", choices=[difficulty.value for difficulty in Difficulty])
    parser.add_argument("--max-time", type=int, help="Maximum total time in minutes")
    parser.add_argument("--source", help="Only recipes from this source id")
    parser.add_argument("--limit", type=int, default=10)
    parser.add_argument("--offset", type=int, default=0)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="madmatch", description="Query MadMatch recipe sources")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    commands = parser.add_subparsers(dest="command", required=True)

    search = commands.add_parser("search", help="Free text recipe search")
    search.add_argument("query")
    _add_filter_arguments(search)

    ingredient = commands.add_parser("ingredient", help="Recipes using an ingredient or product")
    ingredient.add_argument("ingredient")
    _add_filter_arguments(ingredient)

    get = commands.add_parser("get", help="One recipe by id or slug")
    get.add_argument("recipe_id")

    commands.add_parser("sources", help="Configured sources and their health")
    commands.add_parser("health", help="Aggregate health of all sources")
    return parser


def run(args: argparse.Namespace, service: RecipeService) -> int:
    if args.command == "search":
        _print_json([recipe.to_dict() for recipe in service.search(args.query, _filters_from_args(args))])
    elif args.command == "ingredient":
        recipes = service.get_recipes_by_ingredient(args.ingredient, _filters_from_args(args))
        _print_json([recipe.to_dict() for recipe in recipes])
    elif args.command == "get":
        try:
            recipe = service.get_recipe(args.recipe_id)
        except SourceUnavailableError as error:
            print(str(error), file=sys.stderr)
            return 2
        if recipe is None:
            print(f"Recipe not found: {args.recipe_id}", file=sys.stderr)
            return 1
        _print_json(recipe.to_dict())
    elif args.command == "sources":
        _print_json([asdict(status) for status in service.get_sources()])
    elif args.command == "health":
        health = service.health_check()
        _print_json(asdict(health))
        return 0 if health.healthy else 1
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.log_level)

    return run(args, get_recipe_service())


if __name__ == "__main__":
    sys.exit(main())

"""Recipe creation and edits.

Edits always go through ``ensure_editable_recipe`` so a household changing a
recipe it does not own edits its private fork instead. The fork and the edit
commit together.
"""

import logging
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import func, select, delete, update
from sqlalchemy.orm import Session

from ..db import unit_of_work
from ..errors import InvalidUpdate, NotFound, NotOwned
from ..models import Collection, CollectionRecipe, Ingredient, Recipe, RecipeIngredient, ShoppingListEntry
from .fork import ForkResult, ensure_editable_recipe
from .collections import get_owned_collection
from .ownership import can_read, validate_membership
from .slugs import unique_slug

logger = logging.getLogger("recipeshare.recipes")

EDITABLE_FIELDS = (
    "name",
    "description",
    "prep_minutes",
    "cook_minutes",
    "season",
    "primary_type",
    "secondary_type",
)

# Columns that may not be set to null
REQUIRED_FIELDS = ("name",)

LINE_FIELDS = ("quantity_2p", "quantity_4p", "measure", "preparation", "primary_ingredient")
CATALOG_FIELDS = ("pantry_category", "supermarket_category", "fresh", "cost")


def find_or_create_ingredient(db: Session, household_id: str, line: Mapping[str, Any]) -> Ingredient:
    """Household catalog entry named like ``line["name"]`` (case-insensitive), created if missing."""
    name = line["name"].strip()
    ingredient = db.scalar(
        select(Ingredient)
        .where(
            Ingredient.household_id == household_id,
            func.lower(func.trim(Ingredient.name)) == name.lower(),
        )
        .order_by(Ingredient.id)
        .limit(1)
    )
    if ingredient is None:
        ingredient = Ingredient(
            household_id=household_id,
            name=name,
            **{k: line[k] for k in CATALOG_FIELDS if line.get(k) is not None},
        )
        db.add(ingredient)
        db.flush()
    return ingredient


def _add_lines(db: Session, household_id: str, recipe_id: str, lines: Iterable[Mapping[str, Any]]) -> None:
    for line in lines:
        ingredient = find_or_create_ingredient(db, household_id, line)
        db.add(RecipeIngredient(
            recipe_id=recipe_id,
            ingredient_id=ingredient.id,
            **{k: line.get(k) for k in LINE_FIELDS if line.get(k) is not None},
        ))
    db.flush()


def recipe_to_dict(db: Session, recipe: Recipe) -> dict:
    rows = db.execute(
        select(RecipeIngredient, Ingredient.name)
        .join(Ingredient, RecipeIngredient.ingredient_id == Ingredient.id)
        .where(RecipeIngredient.recipe_id == recipe.id)
        .order_by(RecipeIngredient.primary_ingredient.desc(), Ingredient.name)
    ).all()
    return {
        "id": recipe.id,
        "household_id": recipe.household_id,
        **{name: getattr(recipe, name) for name in EDITABLE_FIELDS},
        "image_filename": recipe.image_filename,
        "pdf_filename": recipe.pdf_filename,
        "url_slug": recipe.url_slug,
        "archived": recipe.archived,
        "parent_id": recipe.parent_id,
        "ingredients": [
            {
                "id": line.id,
                "ingredient_id": line.ingredient_id,
                "name": name,
                **{k: getattr(line, k) for k in LINE_FIELDS},
            }
            for line, name in rows
        ],
    }


def create_recipe(db: Session, household_id: str, collection_id: str, data: Mapping[str, Any]) -> Recipe:
    """Create a recipe owned by the household and link it into one of its collections."""
    with unit_of_work(db, operation="recipe create"):
        collection = db.get(Collection, collection_id)
        if collection is None:
            raise NotFound("Collection not found", code="COLLECTION_NOT_FOUND")
        if collection.household_id != household_id:
            raise NotOwned("You can only add recipes to collections owned by your household")

        recipe = Recipe(
            household_id=household_id,
            url_slug=unique_slug(db, Recipe, data["name"], household_id=household_id, fallback="recipe"),
            **{k: data.get(k) for k in EDITABLE_FIELDS},
        )
        db.add(recipe)
        db.flush()

        next_order = db.scalar(
            select(func.coalesce(func.max(CollectionRecipe.display_order), -1) + 1)
            .where(CollectionRecipe.collection_id == collection_id)
        )
        db.add(CollectionRecipe(collection_id=collection_id, recipe_id=recipe.id, display_order=next_order))
        _add_lines(db, household_id, recipe.id, data.get("ingredients") or [])

    logger.info(f"Recipe {recipe.id} created in collection {collection_id} by household {household_id}")
    return recipe


def link_recipes(db: Session, household_id: str, collection_id: str, recipe_ids: Iterable[str]) -> tuple[list[str], list[str]]:
    """Add existing recipes to a collection the household owns, by reference.

    Every recipe must be active and readable by the household; nothing is
    linked unless all of them are. Recipes already in the collection are
    skipped. Returns ``(linked, skipped)``.
    """
    requested = list(dict.fromkeys(recipe_ids))
    with unit_of_work(db, operation="recipe link"):
        get_owned_collection(db, household_id, collection_id)

        missing = []
        for recipe_id in requested:
            recipe = db.get(Recipe, recipe_id)
            if recipe is None or recipe.archived or not can_read(db, household_id, "recipes", recipe_id):
                missing.append(recipe_id)
        if missing:
            raise NotFound(
                f"Some recipes were not found: {', '.join(missing)}",
                details={"missing_ids": missing},
                code="RECIPES_NOT_FOUND",
            )

        existing = set(db.scalars(
            select(CollectionRecipe.recipe_id).where(
                CollectionRecipe.collection_id == collection_id,
                CollectionRecipe.recipe_id.in_(requested),
            )
        ).all())
        linked = [rid for rid in requested if rid not in existing]
        skipped = [rid for rid in requested if rid in existing]

        next_order = db.scalar(
            select(func.coalesce(func.max(CollectionRecipe.display_order), -1) + 1)
            .where(CollectionRecipe.collection_id == collection_id)
        )
        for offset, recipe_id in enumerate(linked):
            db.add(CollectionRecipe(collection_id=collection_id, recipe_id=recipe_id, display_order=next_order + offset))

    logger.info(f"Linked {len(linked)} recipe(s) into collection {collection_id}, skipped {len(skipped)}")
    return linked, skipped


def get_recipe_in_collection(db: Session, household_id: str, collection_id: str, recipe_id: str) -> Recipe:
    if not validate_membership(db, recipe_id, collection_id, household_id):
        raise NotFound("Recipe not found in this collection", code="RECIPE_NOT_IN_COLLECTION")
    return db.get(Recipe, recipe_id)


def update_recipe(
    db: Session,
    household_id: str,
    collection_id: str,
    recipe_id: str,
    changes: Mapping[str, Any],
) -> tuple[Recipe, ForkResult]:
    """Apply detail changes, forking first when the household does not own the recipe.

    Changes are checked before anything is forked, so a rejected edit never
    leaves a copy behind.
    """
    for key, value in changes.items():
        if key not in EDITABLE_FIELDS:
            raise InvalidUpdate(f"Field {key} is not editable", details={"field": key})
        if value is None and key in REQUIRED_FIELDS:
            raise InvalidUpdate(f"Field {key} cannot be empty", details={"field": key})

    with unit_of_work(db, operation="recipe update"):
        fork = ensure_editable_recipe(db, household_id, collection_id, recipe_id)
        recipe = db.get(Recipe, fork.new_recipe_id)
        for key, value in changes.items():
            setattr(recipe, key, value)

    return recipe, fork


def replace_ingredients(
    db: Session,
    household_id: str,
    collection_id: str,
    recipe_id: str,
    lines: Iterable[Mapping[str, Any]],
) -> tuple[Recipe, ForkResult]:
    """Swap a recipe's ingredient lines for ``lines``, forking first if needed.

    Orphaned catalog entries are left in place; the deletion sweep only runs
    when a recipe is removed.
    """
    with unit_of_work(db, operation="ingredient update"):
        fork = ensure_editable_recipe(db, household_id, collection_id, recipe_id)
        old_lines = select(RecipeIngredient.id).where(RecipeIngredient.recipe_id == fork.new_recipe_id)
        # Shopping history keeps its name and catalog ingredient, only the line link goes
        db.execute(
            update(ShoppingListEntry)
            .where(ShoppingListEntry.recipe_ingredient_id.in_(old_lines))
            .values(recipe_ingredient_id=None)
            .execution_options(synchronize_session=False)
        )
        db.execute(
            delete(RecipeIngredient)
            .where(RecipeIngredient.recipe_id == fork.new_recipe_id)
            .execution_options(synchronize_session=False)
        )
        _add_lines(db, household_id, fork.new_recipe_id, lines)
        recipe = db.get(Recipe, fork.new_recipe_id)

    return recipe, fork


def ensure_asset_target(
    db: Session, household_id: str, collection_id: str, recipe_id: str
) -> tuple[Recipe, Optional[ForkResult]]:
    """Recipe row an upload should land on. Any fork is flushed but left uncommitted."""
    fork = ensure_editable_recipe(db, household_id, collection_id, recipe_id)
    return db.get(Recipe, fork.new_recipe_id), (fork if fork.actions else None)

"""Reference-counted recipe deletion.

A delete ends in one of three ways, chosen from reference counts alone:

- blocked: the household still has the recipe in a plan
- archived: shopping history points at the recipe's ingredient lines, so the
  row must keep resolving; it is hidden from collections instead
- deleted: join rows, then the recipe, then any household ingredient nothing
  else uses, all in one transaction

Blob cleanup runs after commit and can only ever produce a warning.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select, func, delete
from sqlalchemy.orm import Session

from ..db import unit_of_work
from ..errors import CollectionNotEmpty, HasActivePlans, NotFound, NotOwned, ReferentialConflict
from ..models import (
    Collection,
    CollectionRecipe,
    CollectionSubscription,
    Ingredient,
    PlanEntry,
    Recipe,
    RecipeIngredient,
    ShoppingListEntry,
)
from ..storage import BlobStore
from .assets import cleanup_after_commit

logger = logging.getLogger("recipeshare.deletion")


class DeletionDecision(str, enum.Enum):
    BLOCKED = "has_active_plans"
    ARCHIVE = "archived"
    DELETE = "deleted"


def decide_deletion(plan_count: int, shopping_count: int, foreign_reference_count: int = 0) -> DeletionDecision:
    """Pure decision from reference counts.

    The household's own plan entries block outright. Its shopping history, or
    any other household's plan or shopping row, forces an archive so those
    rows keep resolving.
    """
    if plan_count > 0:
        return DeletionDecision.BLOCKED
    if shopping_count > 0 or foreign_reference_count > 0:
        return DeletionDecision.ARCHIVE
    return DeletionDecision.DELETE


@dataclass
class DeletionResult:
    recipe_id: str
    outcome: DeletionDecision
    deleted_ingredient_names: list[str] = field(default_factory=list)
    deleted_files: list[str] = field(default_factory=list)
    warning: Optional[str] = None

    @property
    def archived(self) -> bool:
        return self.outcome == DeletionDecision.ARCHIVE

    @property
    def message(self) -> str:
        if self.archived:
            return "Recipe archived successfully due to shopping list references"
        message = "Recipe deleted successfully"
        count = len(self.deleted_ingredient_names)
        if count:
            message += (
                f" and cleaned up {count} unused ingredient{'' if count == 1 else 's'}"
                f" ({', '.join(self.deleted_ingredient_names)})"
            )
        return message


def count_plan_entries(db: Session, recipe_id: str, household_id: Optional[str] = None, *, exclude_household: bool = False) -> int:
    stmt = select(func.count(PlanEntry.id)).where(PlanEntry.recipe_id == recipe_id)
    if household_id is not None:
        stmt = stmt.where(PlanEntry.household_id != household_id if exclude_household else PlanEntry.household_id == household_id)
    return db.scalar(stmt) or 0


def count_shopping_references(db: Session, recipe_id: str, household_id: Optional[str] = None) -> int:
    """Shopping entries pointing at the recipe's ingredient lines.

    Household-scoped for the decision; unscoped for the in-transaction
    re-check, since any household's row would dangle after a hard delete.
    """
    stmt = (
        select(func.count(ShoppingListEntry.id))
        .join(RecipeIngredient, ShoppingListEntry.recipe_ingredient_id == RecipeIngredient.id)
        .where(RecipeIngredient.recipe_id == recipe_id)
    )
    if household_id is not None:
        stmt = stmt.where(ShoppingListEntry.household_id == household_id)
    return db.scalar(stmt) or 0


def _ensure_no_shopping_references(db: Session, recipe_id: str) -> None:
    """Unscoped re-check: any household's row would dangle after a hard delete."""
    count = count_shopping_references(db, recipe_id)
    if count:
        raise ReferentialConflict(details={"count": count})


def _archive(db: Session, recipe: Recipe, household_id: str) -> None:
    household_collections = select(Collection.id).where(Collection.household_id == household_id)
    db.execute(
        delete(CollectionRecipe)
        .where(
            CollectionRecipe.recipe_id == recipe.id,
            CollectionRecipe.collection_id.in_(household_collections),
        )
        .execution_options(synchronize_session=False)
    )
    recipe.archived = True
    db.flush()


def _sweep_orphan_ingredients(db: Session, household_id: str, ingredient_ids: list[str]) -> list[str]:
    """Delete household ingredients no longer used by any recipe or shopping entry."""
    deleted_names: list[str] = []
    for ingredient_id in ingredient_ids:
        recipe_uses = db.scalar(
            select(func.count(RecipeIngredient.id))
            .join(Recipe, RecipeIngredient.recipe_id == Recipe.id)
            .where(
                RecipeIngredient.ingredient_id == ingredient_id,
                Recipe.household_id == household_id,
            )
        )
        shopping_uses = db.scalar(
            select(func.count(ShoppingListEntry.id)).where(
                ShoppingListEntry.ingredient_id == ingredient_id,
                ShoppingListEntry.household_id == household_id,
            )
        )
        if recipe_uses or shopping_uses:
            continue

        ingredient = db.scalar(
            select(Ingredient).where(
                Ingredient.id == ingredient_id,
                Ingredient.household_id == household_id,
            )
        )
        if ingredient is None:
            # Another household's ingredient is never ours to collect
            continue
        deleted_names.append(ingredient.name)
        db.delete(ingredient)

    db.flush()
    return deleted_names


def _hard_delete(db: Session, recipe: Recipe, household_id: str) -> list[str]:
    ingredient_ids = list(dict.fromkeys(db.scalars(
        select(RecipeIngredient.ingredient_id).where(RecipeIngredient.recipe_id == recipe.id)
    ).all()))

    db.execute(
        delete(RecipeIngredient)
        .where(RecipeIngredient.recipe_id == recipe.id)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        delete(CollectionRecipe)
        .where(CollectionRecipe.recipe_id == recipe.id)
        .execution_options(synchronize_session=False)
    )
    # Lines are gone already; keep the ORM from touching a stale collection
    db.expire(recipe, ["ingredients"])
    db.delete(recipe)
    db.flush()

    return _sweep_orphan_ingredients(db, household_id, ingredient_ids)


def delete_recipe(
    db: Session,
    household_id: str,
    recipe_id: str,
    *,
    store: Optional[BlobStore] = None,
) -> DeletionResult:
    """Archive or hard-delete a recipe owned by the household.

    Raises NotFound, NotOwned or HasActivePlans. Row errors roll the whole
    transaction back.
    """
    with unit_of_work(db, operation="recipe delete"):
        recipe = db.scalar(select(Recipe).where(Recipe.id == recipe_id).with_for_update())
        if recipe is None:
            raise NotFound("Recipe not found", code="RECIPE_NOT_FOUND")
        if recipe.household_id != household_id:
            raise NotOwned("You can only delete recipes owned by your household")

        plan_count = count_plan_entries(db, recipe_id, household_id)
        decision = decide_deletion(
            plan_count,
            count_shopping_references(db, recipe_id, household_id),
            count_plan_entries(db, recipe_id, household_id, exclude_household=True),
        )
        if decision == DeletionDecision.BLOCKED:
            raise HasActivePlans(plan_count)

        if decision == DeletionDecision.DELETE:
            try:
                _ensure_no_shopping_references(db, recipe_id)
            except ReferentialConflict as e:
                # A shopping entry landed since the decision; archiving keeps it resolvable
                logger.info(f"{e.message} ({recipe_id}), archiving instead")
                decision = DeletionDecision.ARCHIVE

        filenames = [recipe.image_filename, recipe.pdf_filename]
        result = DeletionResult(recipe_id=recipe_id, outcome=decision)

        if decision == DeletionDecision.ARCHIVE:
            _archive(db, recipe, household_id)
        else:
            result.deleted_ingredient_names = _hard_delete(db, recipe, household_id)

    logger.info(
        f"Recipe {recipe_id} {result.outcome.value} for household {household_id}"
        + (f", removed ingredients: {', '.join(result.deleted_ingredient_names)}" if result.deleted_ingredient_names else "")
    )

    if result.outcome == DeletionDecision.DELETE and store is not None:
        result.deleted_files, result.warning = cleanup_after_commit(
            db, store, [f for f in filenames if f], "recipes"
        )
    return result


def remove_recipe_from_collection(db: Session, household_id: str, collection_id: str, recipe_id: str) -> None:
    """Unlink a recipe from a collection the household owns. The recipe itself is untouched."""
    with unit_of_work(db, operation="collection unlink"):
        collection = db.get(Collection, collection_id)
        if collection is None:
            raise NotFound("Collection not found", code="COLLECTION_NOT_FOUND")
        if collection.household_id != household_id:
            raise NotOwned("You can only remove recipes from collections owned by your household")

        removed = db.execute(
            delete(CollectionRecipe).where(
                CollectionRecipe.collection_id == collection_id,
                CollectionRecipe.recipe_id == recipe_id,
            )
        ).rowcount
        if not removed:
            raise NotFound("Recipe not found in this collection", code="RECIPE_NOT_IN_COLLECTION")

    logger.info(f"Recipe {recipe_id} removed from collection {collection_id}")


def delete_collection(
    db: Session,
    household_id: str,
    collection_id: str,
    *,
    store: Optional[BlobStore] = None,
) -> Optional[str]:
    """Delete an empty collection the household owns; returns a cleanup warning, if any."""
    with unit_of_work(db, operation="collection delete"):
        collection = db.get(Collection, collection_id)
        if collection is None:
            raise NotFound("Collection not found", code="COLLECTION_NOT_FOUND")
        if collection.household_id != household_id:
            raise NotOwned("You can only delete collections owned by your household")

        recipe_count = db.scalar(
            select(func.count(CollectionRecipe.id)).where(CollectionRecipe.collection_id == collection_id)
        ) or 0
        if recipe_count:
            raise CollectionNotEmpty(recipe_count)

        filenames = [collection.filename, collection.filename_dark]
        db.execute(delete(CollectionSubscription).where(CollectionSubscription.collection_id == collection_id))
        db.delete(collection)

    logger.info(f"Collection {collection_id} deleted by household {household_id}")

    if store is None:
        return None
    _, warning = cleanup_after_commit(db, store, [f for f in filenames if f], "collections")
    return warning

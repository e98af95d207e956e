"""Copy-on-write for shared collections and recipes.

A household editing content it does not own gets a private copy of the
smallest subtree needed (collection, recipe, its ingredient lines) and the
edit is redirected there. Nothing here commits: the caller applies its field
update on the returned ids and commits once, so a half-forked recipe is
never visible.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import func, select, delete
from sqlalchemy.orm import Session

from ..errors import NotFound
from ..models import (
    Collection,
    CollectionRecipe,
    CollectionSubscription,
    Ingredient,
    Recipe,
    RecipeIngredient,
)
from .ownership import validate_membership
from .slugs import unique_slug

logger = logging.getLogger("recipeshare.fork")

COLLECTION_COPIED = "collection_copied"
RECIPE_COPIED = "recipe_copied"

# Scalar recipe fields carried over verbatim to a fork
RECIPE_COPY_FIELDS = (
    "name",
    "description",
    "prep_minutes",
    "cook_minutes",
    "season",
    "primary_type",
    "secondary_type",
    "image_filename",
    "pdf_filename",
)

INGREDIENT_COPY_FIELDS = (
    "name",
    "pantry_category",
    "supermarket_category",
    "fresh",
    "cost",
    "stockcode",
)


@dataclass
class ForkResult:
    new_collection_id: str
    new_recipe_id: str
    actions: set[str] = field(default_factory=set)
    new_collection_slug: Optional[str] = None
    new_recipe_slug: Optional[str] = None

    @property
    def collection_copied(self) -> bool:
        return COLLECTION_COPIED in self.actions

    @property
    def recipe_copied(self) -> bool:
        return RECIPE_COPIED in self.actions

    def to_dict(self) -> dict:
        return {
            "new_collection_id": self.new_collection_id,
            "new_recipe_id": self.new_recipe_id,
            "actions_taken": sorted(self.actions),
            "new_collection_slug": self.new_collection_slug,
            "new_recipe_slug": self.new_recipe_slug,
        }


def copy_collection(db: Session, source: Collection, household_id: str) -> Collection:
    """Private copy of a collection, with the source's recipe links."""
    copy = Collection(
        household_id=household_id,
        title=source.title,
        subtitle=source.subtitle,
        filename=source.filename,
        filename_dark=source.filename_dark,
        is_public=False,
        parent_id=source.id,
        url_slug=unique_slug(db, Collection, source.url_slug or source.title, household_id=household_id, fallback="collection"),
    )
    db.add(copy)
    db.flush()

    # Recipes are linked by reference; they are only copied when edited
    memberships = db.scalars(
        select(CollectionRecipe).where(CollectionRecipe.collection_id == source.id)
    ).all()
    for m in memberships:
        db.add(CollectionRecipe(
            collection_id=copy.id,
            recipe_id=m.recipe_id,
            display_order=m.display_order,
        ))

    # The private copy supersedes any subscription to the original
    db.execute(
        delete(CollectionSubscription).where(
            CollectionSubscription.household_id == household_id,
            CollectionSubscription.collection_id == source.id,
        )
    )
    db.flush()
    return copy


def copy_recipe(db: Session, source: Recipe, household_id: str) -> Recipe:
    copy = Recipe(
        household_id=household_id,
        parent_id=source.id,
        archived=False,
        url_slug=unique_slug(db, Recipe, source.url_slug or source.name, household_id=household_id, fallback="recipe"),
        **{name: getattr(source, name) for name in RECIPE_COPY_FIELDS},
    )
    db.add(copy)
    db.flush()
    return copy


class IngredientResolver:
    """Maps ingredients to rows owned by one household, creating them as needed.

    Matching is by case-insensitive name within the household's catalog, so a
    household that already has "Tomato" reuses it. Results are memoised for the
    lifetime of the resolver (one fork).
    """

    def __init__(self, db: Session, household_id: str):
        self.db = db
        self.household_id = household_id
        self._by_source: dict[str, str] = {}
        self._by_name: dict[str, str] = {}
        self.created: list[Ingredient] = []

    def resolve(self, source: Ingredient) -> str:
        if source.household_id == self.household_id:
            return source.id
        if source.id in self._by_source:
            return self._by_source[source.id]

        key = source.name.strip().lower()
        ingredient_id = self._by_name.get(key)
        if ingredient_id is None:
            ingredient_id = self.db.scalar(
                select(Ingredient.id)
                .where(
                    Ingredient.household_id == self.household_id,
                    func.lower(func.trim(Ingredient.name)) == key,
                )
                .order_by(Ingredient.id)
                .limit(1)
            )
        if ingredient_id is None:
            copy = Ingredient(
                household_id=self.household_id,
                parent_id=source.id,
                **{name: getattr(source, name) for name in INGREDIENT_COPY_FIELDS},
            )
            self.db.add(copy)
            self.db.flush()
            self.created.append(copy)
            ingredient_id = copy.id

        self._by_source[source.id] = ingredient_id
        self._by_name[key] = ingredient_id
        return ingredient_id


def copy_recipe_ingredients(db: Session, source_recipe_id: str, target_recipe_id: str, household_id: str) -> int:
    """Copy ingredient lines onto the target, re-pointing them at household-owned ingredients."""
    resolver = IngredientResolver(db, household_id)
    lines = db.scalars(
        select(RecipeIngredient).where(RecipeIngredient.recipe_id == source_recipe_id)
    ).all()

    for line in lines:
        db.add(RecipeIngredient(
            recipe_id=target_recipe_id,
            ingredient_id=resolver.resolve(line.ingredient),
            quantity_2p=line.quantity_2p,
            quantity_4p=line.quantity_4p,
            measure=line.measure,
            preparation=line.preparation,
            primary_ingredient=line.primary_ingredient,
            parent_id=line.id,
        ))
    db.flush()

    if resolver.created:
        logger.info(
            f"Created {len(resolver.created)} ingredient(s) for household {household_id}: "
            f"{', '.join(i.name for i in resolver.created)}"
        )
    return len(lines)


def _relink_recipe(db: Session, collection_id: str, old_recipe_id: str, new_recipe_id: str) -> None:
    membership = db.scalar(
        select(CollectionRecipe).where(
            CollectionRecipe.collection_id == collection_id,
            CollectionRecipe.recipe_id == old_recipe_id,
        )
    )
    if membership is not None:
        membership.recipe_id = new_recipe_id
    else:
        next_order = db.scalar(
            select(func.coalesce(func.max(CollectionRecipe.display_order), -1) + 1)
            .where(CollectionRecipe.collection_id == collection_id)
        )
        db.add(CollectionRecipe(collection_id=collection_id, recipe_id=new_recipe_id, display_order=next_order))
    db.flush()


def find_collection_fork(db: Session, household_id: str, source_id: str) -> Optional[Collection]:
    """The household's earlier private copy of a collection, if it kept one."""
    return db.scalar(
        select(Collection)
        .where(Collection.household_id == household_id, Collection.parent_id == source_id)
        .order_by(Collection.created_at, Collection.id)
        .limit(1)
    )


def find_recipe_fork(db: Session, household_id: str, source_id: str, collection_id: str) -> Optional[Recipe]:
    """The household's live copy of a recipe that is already linked into ``collection_id``."""
    return db.scalar(
        select(Recipe)
        .join(CollectionRecipe, CollectionRecipe.recipe_id == Recipe.id)
        .where(
            Recipe.household_id == household_id,
            Recipe.parent_id == source_id,
            Recipe.archived.is_(False),
            CollectionRecipe.collection_id == collection_id,
        )
        .order_by(Recipe.created_at, Recipe.id)
        .limit(1)
    )


def cascade_copy(db: Session, household_id: str, collection_id: str, recipe_id: str) -> ForkResult:
    """Make sure the household owns both the collection and the recipe being edited.

    Returns the ids the edit must be applied to. Owned entities, and copies
    the household already made of them, are reused, so repeating an edit
    through the original ids converges on one private fork.

    Raises NotFound when either row is missing, the collection is invisible
    to the household, or the recipe is not linked into it.
    """
    collection = db.get(Collection, collection_id)
    if collection is None:
        raise NotFound(f"Collection {collection_id} not found", code="COLLECTION_NOT_FOUND")
    recipe = db.get(Recipe, recipe_id)
    if recipe is None:
        raise NotFound(f"Recipe {recipe_id} not found", code="RECIPE_NOT_FOUND")
    if not validate_membership(db, recipe_id, collection_id, household_id):
        raise NotFound("Recipe not found in this collection", code="RECIPE_NOT_IN_COLLECTION")

    result = ForkResult(new_collection_id=collection.id, new_recipe_id=recipe.id)

    if collection.household_id != household_id:
        existing = find_collection_fork(db, household_id, collection.id)
        if existing is not None:
            result.new_collection_id = existing.id
        else:
            new_collection = copy_collection(db, collection, household_id)
            result.new_collection_id = new_collection.id
            result.new_collection_slug = new_collection.url_slug
            result.actions.add(COLLECTION_COPIED)

    if recipe.household_id != household_id:
        existing = find_recipe_fork(db, household_id, recipe.id, result.new_collection_id)
        if existing is not None:
            result.new_recipe_id = existing.id
        else:
            new_recipe = copy_recipe(db, recipe, household_id)
            copy_recipe_ingredients(db, recipe.id, new_recipe.id, household_id)
            _relink_recipe(db, result.new_collection_id, recipe.id, new_recipe.id)
            result.new_recipe_id = new_recipe.id
            result.new_recipe_slug = new_recipe.url_slug
            result.actions.add(RECIPE_COPIED)

    if result.actions:
        logger.info(
            f"Forked for household {household_id}: collection {collection_id} -> {result.new_collection_id}, "
            f"recipe {recipe_id} -> {result.new_recipe_id} ({', '.join(sorted(result.actions))})"
        )
    elif (result.new_collection_id, result.new_recipe_id) != (collection_id, recipe_id):
        logger.info(
            f"Reusing fork for household {household_id}: collection {result.new_collection_id}, "
            f"recipe {result.new_recipe_id}"
        )
    return result


def ensure_editable_recipe(db: Session, household_id: str, collection_id: str, recipe_id: str) -> ForkResult:
    """Entry point for recipe mutations: check visibility, then fork if needed."""
    return cascade_copy(db, household_id, collection_id, recipe_id)

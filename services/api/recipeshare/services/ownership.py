"""Ownership and read-access queries.

Every answer is derived from the current rows on each call; nothing is cached,
since ownership changes whenever a fork lands. Unknown entities answer False
(or None) rather than raising, so callers decide between 403 and 404.
"""

import logging
from typing import Literal, Optional

from sqlalchemy import select, exists, and_, or_
from sqlalchemy.orm import Session

from ..models import (
    Collection,
    CollectionRecipe,
    CollectionSubscription,
    Ingredient,
    Recipe,
    RecipeIngredient,
)

logger = logging.getLogger("recipeshare.ownership")

EntityKind = Literal["collections", "recipes", "ingredients"]
AccessLevel = Literal["owned", "subscribed", "public"]

_OWNED_MODELS = {
    "collections": Collection,
    "recipes": Recipe,
    "ingredients": Ingredient,
}


def can_edit(db: Session, household_id: str, kind: EntityKind, entity_id: str) -> bool:
    """True only when the household owns the entity."""
    model = _OWNED_MODELS.get(kind)
    if model is None:
        raise ValueError(f"Unknown entity kind: {kind}")
    owner = db.scalar(select(model.household_id).where(model.id == entity_id))
    return owner is not None and owner == household_id


def collection_access(db: Session, household_id: str, collection_id: str) -> Optional[AccessLevel]:
    """Access level of a household to a collection, or None."""
    row = db.execute(
        select(Collection.household_id, Collection.is_public, CollectionSubscription.id)
        .outerjoin(
            CollectionSubscription,
            and_(
                CollectionSubscription.collection_id == Collection.id,
                CollectionSubscription.household_id == household_id,
            ),
        )
        .where(Collection.id == collection_id)
    ).first()
    if row is None:
        return None

    owner_id, is_public, subscription_id = row
    if owner_id == household_id:
        return "owned"
    if subscription_id is not None:
        return "subscribed"
    if is_public:
        return "public"
    return None


def _readable_collection_clause(household_id: str):
    subscribed = exists().where(
        CollectionSubscription.collection_id == Collection.id,
        CollectionSubscription.household_id == household_id,
    )
    return or_(
        Collection.household_id == household_id,
        Collection.is_public.is_(True),
        subscribed,
    )


def readable_collections_query(household_id: str):
    """Select statement for every collection the household can read."""
    return select(Collection).where(_readable_collection_clause(household_id))


def can_read(db: Session, household_id: str, kind: EntityKind, entity_id: str) -> bool:
    if kind == "collections":
        return collection_access(db, household_id, entity_id) is not None

    if kind == "recipes":
        owner = db.scalar(select(Recipe.household_id).where(Recipe.id == entity_id))
        if owner is None:
            return False
        if owner == household_id:
            return True
        via_collection = db.scalar(
            select(CollectionRecipe.id)
            .join(Collection, Collection.id == CollectionRecipe.collection_id)
            .where(
                CollectionRecipe.recipe_id == entity_id,
                _readable_collection_clause(household_id),
            )
            .limit(1)
        )
        return via_collection is not None

    if kind == "ingredients":
        owner = db.scalar(select(Ingredient.household_id).where(Ingredient.id == entity_id))
        if owner is None:
            return False
        if owner == household_id:
            return True
        recipe_ids = db.scalars(
            select(RecipeIngredient.recipe_id).where(RecipeIngredient.ingredient_id == entity_id).distinct()
        ).all()
        return any(can_read(db, household_id, "recipes", rid) for rid in recipe_ids)

    raise ValueError(f"Unknown entity kind: {kind}")


def validate_membership(db: Session, recipe_id: str, collection_id: str, household_id: str) -> bool:
    """Recipe is linked into the collection and the household can read that collection.

    Access is checked first so a private collection's contents are never
    revealed to a household that cannot see it.
    """
    if collection_access(db, household_id, collection_id) is None:
        return False

    linked = db.scalar(
        select(CollectionRecipe.id).where(
            CollectionRecipe.collection_id == collection_id,
            CollectionRecipe.recipe_id == recipe_id,
        )
    )
    return linked is not None

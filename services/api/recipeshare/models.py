"""SQLAlchemy ORM models for recipeshare.

Tables:
- households: tenant boundary; owns collections, recipes and ingredients
- collections / collection_recipes: recipe catalogs and their many-to-many membership
- collection_subscriptions: read-only access to another household's public collection
- recipes / recipe_ingredients / ingredients: recipe content; ingredients are private per household
- plan_entries / shopping_list_entries: live and historical references that gate deletion
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Text,
    Integer,
    Boolean,
    Numeric,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func, false

from .db import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


class Household(Base):
    """Tenant boundary for write access and ingredient isolation."""
    __tablename__ = "households"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    slug: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    collections: Mapped[list["Collection"]] = relationship(
        "Collection", back_populates="household"
    )


class Collection(Base):
    """A household-owned catalog of recipes.

    Readable by its owner, by subscribers, and by anyone when public.
    Mutable only by the owner.
    """
    __tablename__ = "collections"
    __table_args__ = (
        Index("ix_collections_household_id", "household_id"),
        UniqueConstraint("household_id", "url_slug", name="uq_collections_household_slug"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    household_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    subtitle: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    # Asset filenames: {base_hash}[_vN].{ext}
    filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    filename_dark: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    url_slug: Mapped[str] = mapped_column(String(120), nullable=False)

    # Source collection when created by a fork
    parent_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    household: Mapped["Household"] = relationship("Household", back_populates="collections")
    memberships: Mapped[list["CollectionRecipe"]] = relationship(
        "CollectionRecipe", back_populates="collection",
        order_by="CollectionRecipe.display_order"
    )


class CollectionRecipe(Base):
    """Membership of a recipe in a collection."""
    __tablename__ = "collection_recipes"
    __table_args__ = (
        Index("ix_collection_recipes_recipe_id", "recipe_id"),
        UniqueConstraint("collection_id", "recipe_id", name="uq_collection_recipe"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    collection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("collections.id", ondelete="CASCADE"), nullable=False
    )
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    collection: Mapped["Collection"] = relationship("Collection", back_populates="memberships")
    recipe: Mapped["Recipe"] = relationship("Recipe")


class CollectionSubscription(Base):
    """Read access to another household's collection. Never grants write access."""
    __tablename__ = "collection_subscriptions"
    __table_args__ = (
        UniqueConstraint("household_id", "collection_id", name="uq_subscription"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    household_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    collection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("collections.id", ondelete="CASCADE"), nullable=False
    )
    subscribed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Recipe(Base):
    """Recipe content. ``household_id`` is the effective owner."""
    __tablename__ = "recipes"
    __table_args__ = (
        Index("ix_recipes_household_id", "household_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    household_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    prep_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cook_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Classification
    season: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    primary_type: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    secondary_type: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    image_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    pdf_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    url_slug: Mapped[str] = mapped_column(String(120), nullable=False)
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    # Source recipe when created by a fork
    parent_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    ingredients: Mapped[list["RecipeIngredient"]] = relationship(
        "RecipeIngredient", back_populates="recipe", passive_deletes=True
    )


class Ingredient(Base):
    """Household-private ingredient catalog entry."""
    __tablename__ = "ingredients"
    __table_args__ = (
        Index("ix_ingredients_household_id", "household_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    household_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    pantry_category: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    supermarket_category: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    fresh: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    cost: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)
    stockcode: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    parent_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)


class RecipeIngredient(Base):
    """Ingredient line on a recipe."""
    __tablename__ = "recipe_ingredients"
    __table_args__ = (
        Index("ix_recipe_ingredients_recipe_id", "recipe_id"),
        Index("ix_recipe_ingredients_ingredient_id", "ingredient_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )
    ingredient_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("ingredients.id"), nullable=False
    )
    quantity_2p: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    quantity_4p: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    measure: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    preparation: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    primary_ingredient: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    parent_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="ingredients")
    ingredient: Mapped["Ingredient"] = relationship("Ingredient")


class PlanEntry(Base):
    """A recipe scheduled for a household's week. Blocks recipe deletion."""
    __tablename__ = "plan_entries"
    __table_args__ = (
        Index("ix_plan_entries_household_week", "household_id", "year", "week"),
        Index("ix_plan_entries_recipe_id", "recipe_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    household_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    week: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.id"), nullable=False
    )


class ShoppingListEntry(Base):
    """Historical shopping record. Blocks hard delete of the source recipe."""
    __tablename__ = "shopping_list_entries"
    __table_args__ = (
        Index("ix_shopping_list_household_week", "household_id", "year", "week"),
        Index("ix_shopping_list_recipe_ingredient_id", "recipe_ingredient_id"),
        Index("ix_shopping_list_ingredient_id", "ingredient_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    household_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    week: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    recipe_ingredient_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("recipe_ingredients.id"), nullable=True
    )
    ingredient_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("ingredients.id"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    purchased: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    sort: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

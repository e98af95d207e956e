"""Initial schema: households, collections, recipes, ingredients, plan and shopping entries

Revision ID: 001_initial_schema
Revises: 
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Households table
    op.create_table(
        "households",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String(80), unique=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Collections table
    op.create_table(
        "collections",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("household_id", sa.String(36), sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("subtitle", sa.Text, nullable=True),
        sa.Column("is_public", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("filename", sa.String(255), nullable=True),
        sa.Column("filename_dark", sa.String(255), nullable=True),
        sa.Column("url_slug", sa.String(120), nullable=False),
        sa.Column("parent_id", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("household_id", "url_slug", name="uq_collections_household_slug"),
    )
    op.create_index("ix_collections_household_id", "collections", ["household_id"])

    # Recipes table
    op.create_table(
        "recipes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("household_id", sa.String(36), sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("prep_minutes", sa.Integer, nullable=True),
        sa.Column("cook_minutes", sa.Integer, nullable=True),
        sa.Column("season", sa.String(40), nullable=True),
        sa.Column("primary_type", sa.String(40), nullable=True),
        sa.Column("secondary_type", sa.String(40), nullable=True),
        sa.Column("image_filename", sa.String(255), nullable=True),
        sa.Column("pdf_filename", sa.String(255), nullable=True),
        sa.Column("url_slug", sa.String(120), nullable=False),
        sa.Column("archived", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("parent_id", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_recipes_household_id", "recipes", ["household_id"])

    # Collection membership
    op.create_table(
        "collection_recipes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("collection_id", sa.String(36), sa.ForeignKey("collections.id", ondelete="CASCADE"), nullable=False),
        sa.Column("recipe_id", sa.String(36), sa.ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("display_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("collection_id", "recipe_id", name="uq_collection_recipe"),
    )
    op.create_index("ix_collection_recipes_recipe_id", "collection_recipes", ["recipe_id"])

    # Subscriptions
    op.create_table(
        "collection_subscriptions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("household_id", sa.String(36), sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("collection_id", sa.String(36), sa.ForeignKey("collections.id", ondelete="CASCADE"), nullable=False),
        sa.Column("subscribed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("household_id", "collection_id", name="uq_subscription"),
    )

    # Ingredient catalog (private per household)
    op.create_table(
        "ingredients",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("household_id", sa.String(36), sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("pantry_category", sa.String(80), nullable=True),
        sa.Column("supermarket_category", sa.String(80), nullable=True),
        sa.Column("fresh", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("cost", sa.Numeric(10, 2), nullable=True),
        sa.Column("stockcode", sa.String(40), nullable=True),
        sa.Column("parent_id", sa.String(36), nullable=True),
    )
    op.create_index("ix_ingredients_household_id", "ingredients", ["household_id"])

    # Ingredient lines
    op.create_table(
        "recipe_ingredients",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("recipe_id", sa.String(36), sa.ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("ingredient_id", sa.String(36), sa.ForeignKey("ingredients.id"), nullable=False),
        sa.Column("quantity_2p", sa.String(40), nullable=True),
        sa.Column("quantity_4p", sa.String(40), nullable=True),
        sa.Column("measure", sa.String(40), nullable=True),
        sa.Column("preparation", sa.String(80), nullable=True),
        sa.Column("primary_ingredient", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("parent_id", sa.String(36), nullable=True),
    )
    op.create_index("ix_recipe_ingredients_recipe_id", "recipe_ingredients", ["recipe_id"])
    op.create_index("ix_recipe_ingredients_ingredient_id", "recipe_ingredients", ["ingredient_id"])

    # Plan entries
    op.create_table(
        "plan_entries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("household_id", sa.String(36), sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("week", sa.Integer, nullable=False),
        sa.Column("year", sa.Integer, nullable=False),
        sa.Column("recipe_id", sa.String(36), sa.ForeignKey("recipes.id"), nullable=False),
    )
    op.create_index("ix_plan_entries_household_week", "plan_entries", ["household_id", "year", "week"])
    op.create_index("ix_plan_entries_recipe_id", "plan_entries", ["recipe_id"])

    # Shopping list history
    op.create_table(
        "shopping_list_entries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("household_id", sa.String(36), sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("week", sa.Integer, nullable=False),
        sa.Column("year", sa.Integer, nullable=False),
        sa.Column("recipe_ingredient_id", sa.String(36), sa.ForeignKey("recipe_ingredients.id"), nullable=True),
        sa.Column("ingredient_id", sa.String(36), sa.ForeignKey("ingredients.id"), nullable=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("purchased", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("sort", sa.Integer, nullable=False, server_default="0"),
    )
    op.create_index("ix_shopping_list_household_week", "shopping_list_entries", ["household_id", "year", "week"])
    op.create_index("ix_shopping_list_recipe_ingredient_id", "shopping_list_entries", ["recipe_ingredient_id"])
    op.create_index("ix_shopping_list_ingredient_id", "shopping_list_entries", ["ingredient_id"])


def downgrade() -> None:
    op.drop_table("shopping_list_entries")
    op.drop_table("plan_entries")
    op.drop_table("recipe_ingredients")
    op.drop_table("ingredients")
    op.drop_table("collection_subscriptions")
    op.drop_table("collection_recipes")
    op.drop_table("recipes")
    op.drop_table("collections")
    op.drop_table("households")

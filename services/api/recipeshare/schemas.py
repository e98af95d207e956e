"""Pydantic schemas for the recipeshare API.

Request/response models for:
- Households
- Collections (with access level and subscription state)
- Recipes and their ingredient lines
- Fork metadata returned by recipe mutations
- Deletion and asset results
- Plan and shopping entries
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Literal

from pydantic import BaseModel, Field, field_validator


# --- Household ---

class HouseholdCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class HouseholdOut(BaseModel):
    id: str
    slug: str
    name: str
    created_at: datetime

    class Config:
        from_attributes = True


# --- Collection ---

class CollectionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    subtitle: Optional[str] = None
    is_public: bool = False


class CollectionUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    subtitle: Optional[str] = None
    is_public: Optional[bool] = None

    @field_validator("title", "is_public")
    def not_null(cls, v):
        # Omit the field to leave it unchanged; null is not a value for it
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class CollectionOut(BaseModel):
    id: str
    household_id: str
    title: str
    subtitle: Optional[str]
    is_public: bool
    filename: Optional[str]
    filename_dark: Optional[str]
    url_slug: str
    parent_id: Optional[str]

    class Config:
        from_attributes = True


class CollectionListItem(CollectionOut):
    access_level: Literal["owned", "subscribed", "public"]
    recipe_count: int = 0


class SubscriptionOut(BaseModel):
    collection_id: str
    subscribed: bool


class CollectionDeleteOut(BaseModel):
    collection_id: str
    message: str
    warning: Optional[str] = None


# --- Ingredient lines ---

class RecipeIngredientIn(BaseModel):
    """One ingredient line; the ingredient is matched by name in the household catalog."""
    name: str = Field(..., min_length=1, max_length=200)
    quantity_2p: Optional[str] = None
    quantity_4p: Optional[str] = None
    measure: Optional[str] = None
    preparation: Optional[str] = None
    primary_ingredient: bool = False
    pantry_category: Optional[str] = None
    supermarket_category: Optional[str] = None
    fresh: bool = False
    cost: Optional[Decimal] = None


class RecipeIngredientOut(BaseModel):
    id: str
    ingredient_id: str
    name: str
    quantity_2p: Optional[str]
    quantity_4p: Optional[str]
    measure: Optional[str]
    preparation: Optional[str]
    primary_ingredient: bool


# --- Recipe ---

class RecipeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    prep_minutes: Optional[int] = Field(None, ge=0)
    cook_minutes: Optional[int] = Field(None, ge=0)
    season: Optional[str] = None
    primary_type: Optional[str] = None
    secondary_type: Optional[str] = None
    ingredients: list[RecipeIngredientIn] = []


class RecipeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    prep_minutes: Optional[int] = Field(None, ge=0)
    cook_minutes: Optional[int] = Field(None, ge=0)
    season: Optional[str] = None
    primary_type: Optional[str] = None
    secondary_type: Optional[str] = None

    @field_validator("name")
    def name_not_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class RecipeOut(BaseModel):
    id: str
    household_id: str
    name: str
    description: Optional[str]
    prep_minutes: Optional[int]
    cook_minutes: Optional[int]
    season: Optional[str]
    primary_type: Optional[str]
    secondary_type: Optional[str]
    image_filename: Optional[str]
    pdf_filename: Optional[str]
    url_slug: str
    archived: bool
    parent_id: Optional[str]
    ingredients: list[RecipeIngredientOut] = []


class ForkOut(BaseModel):
    new_collection_id: str
    new_recipe_id: str
    actions_taken: list[str]
    new_collection_slug: Optional[str] = None
    new_recipe_slug: Optional[str] = None


class RecipeLinkIn(BaseModel):
    recipe_ids: list[str] = Field(..., min_length=1)


class RecipeLinkOut(BaseModel):
    collection_id: str
    message: str
    linked: list[str] = []
    skipped: list[str] = []


class RecipeMutationOut(BaseModel):
    recipe: RecipeOut
    fork: ForkOut


class AssetUploadOut(BaseModel):
    filename: str
    url: str
    deleted_files: list[str] = []
    warning: Optional[str] = None
    fork: Optional[ForkOut] = None


class RecipeDeleteOut(BaseModel):
    recipe_id: str
    outcome: Literal["archived", "deleted"]
    archived: bool
    message: str
    deleted_ingredients: list[str] = []
    deleted_files: list[str] = []
    warning: Optional[str] = None


# --- Plan / shopping ---

class PlanEntryCreate(BaseModel):
    recipe_id: str
    week: int = Field(..., ge=1, le=53)
    year: int = Field(..., ge=2000)


class PlanEntryOut(BaseModel):
    id: str
    recipe_id: str
    week: int
    year: int

    class Config:
        from_attributes = True


class ShoppingEntryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    week: int = Field(..., ge=1, le=53)
    year: int = Field(..., ge=2000)
    recipe_ingredient_id: Optional[str] = None
    ingredient_id: Optional[str] = None


class ShoppingEntryOut(BaseModel):
    id: str
    name: str
    week: int
    year: int
    recipe_ingredient_id: Optional[str]
    ingredient_id: Optional[str]
    purchased: bool

    class Config:
        from_attributes = True


# --- Admin ---

class AssetSweepOut(BaseModel):
    scope: str
    deleted: list[str]
    failed: list[str]

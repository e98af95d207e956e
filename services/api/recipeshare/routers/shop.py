from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_household
from ..models import Household, RecipeIngredient, ShoppingListEntry
from ..schemas import ShoppingEntryCreate, ShoppingEntryOut
from ..services.ownership import can_edit, can_read

router = APIRouter(prefix="/shop", tags=["shop"])


@router.post("/entries", response_model=ShoppingEntryOut, status_code=201)
def create_shopping_entry(
    data: ShoppingEntryCreate,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
):
    """Record a shopping list item, optionally tied to a recipe's ingredient line."""
    ingredient_id = data.ingredient_id
    if data.recipe_ingredient_id:
        line = db.get(RecipeIngredient, data.recipe_ingredient_id)
        if not line or not can_read(db, household.id, "recipes", line.recipe_id):
            raise HTTPException(status_code=404, detail="Recipe ingredient not found")
        if ingredient_id is None and can_edit(db, household.id, "ingredients", line.ingredient_id):
            ingredient_id = line.ingredient_id

    # Catalog ingredients are private; history may only point at our own
    if ingredient_id and not can_edit(db, household.id, "ingredients", ingredient_id):
        raise HTTPException(status_code=404, detail="Ingredient not found")

    entry = ShoppingListEntry(
        household_id=household.id,
        name=data.name,
        week=data.week,
        year=data.year,
        recipe_ingredient_id=data.recipe_ingredient_id,
        ingredient_id=ingredient_id,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_household
from ..models import Household, PlanEntry
from ..schemas import PlanEntryCreate, PlanEntryOut
from ..services.ownership import can_read

router = APIRouter(prefix="/plan", tags=["plan"])


@router.post("/entries", response_model=PlanEntryOut, status_code=201)
def create_plan_entry(
    data: PlanEntryCreate,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
):
    """Schedule a readable recipe into a week."""
    if not can_read(db, household.id, "recipes", data.recipe_id):
        raise HTTPException(status_code=404, detail="Recipe not found")

    entry = PlanEntry(household_id=household.id, **data.model_dump())
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


@router.delete("/entries/{entry_id}")
def delete_plan_entry(
    entry_id: str,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
):
    entry = db.query(PlanEntry).filter(
        PlanEntry.id == entry_id,
        PlanEntry.household_id == household.id,
    ).first()
    if not entry:
        raise HTTPException(status_code=404, detail="Plan entry not found")

    db.delete(entry)
    db.commit()
    return {"ok": True}

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from ..db import get_db
from ..models import Household
from ..schemas import HouseholdCreate, HouseholdOut
from ..services.slugs import unique_slug

router = APIRouter(prefix="/households", tags=["households"])


@router.get("/", response_model=List[HouseholdOut])
def list_households(db: Session = Depends(get_db)):
    """List all households sorted by creation date."""
    return db.query(Household).order_by(Household.created_at).all()


@router.post("/", response_model=HouseholdOut)
def create_household(
    data: HouseholdCreate,
    db: Session = Depends(get_db)
):
    """Create a household with an auto-generated, unique slug."""
    household = Household(
        name=data.name,
        slug=unique_slug(db, Household, data.name, column="slug", fallback="household"),
    )

    try:
        db.add(household)
        db.commit()
        db.refresh(household)
        return household
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Could not create household")

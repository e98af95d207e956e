"""FastAPI dependencies for the recipeshare API.

Provides:
- Database session dependency
- Household resolution (header → env → fallback)
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .db import get_db
from .models import Household
from .settings import settings


def get_household(
    db: Session = Depends(get_db),
    x_household_id: Optional[str] = Header(None, alias="X-Household-Id"),
) -> Household:
    """Resolve the acting household via header, env, or fallback.

    Resolution order:
    1. X-Household-Id header (if present):
       - Try as UUID
       - Try as slug
       - If not found -> 404 (strict)

    2. settings.default_household_slug
    3. First household in DB

    Raises:
        HTTPException 404 if no household found or the header is unknown
    """
    household: Optional[Household] = None

    # 1. Header (strict)
    if x_household_id:
        try:
            household = db.get(Household, str(uuid.UUID(x_household_id)))
        except ValueError:
            household = db.query(Household).filter(Household.slug == x_household_id).first()

        if household:
            return household

        # An explicit header must never fall back to the default household
        raise HTTPException(
            status_code=404,
            detail=f"Household '{x_household_id}' not found"
        )

    # 2. Default slug from settings
    if settings.default_household_slug:
        household = db.query(Household).filter(
            Household.slug == settings.default_household_slug
        ).first()
        if household:
            return household

    # 3. First household
    household = db.query(Household).order_by(Household.created_at).first()
    if household:
        return household

    raise HTTPException(
        status_code=404,
        detail="No household found. Create one with POST /api/households/."
    )

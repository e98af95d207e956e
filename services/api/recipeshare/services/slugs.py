import re
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session


def generate_slug(name: str, fallback: str = "item") -> str:
    # Convert to lowercase, replace spaces/symbols with hyphens
    slug = name.lower()
    slug = re.sub(r'[^a-z0-9]+', '-', slug)
    slug = slug.strip('-')
    return slug[:100] or fallback


def unique_slug(
    db: Session,
    model,
    name: str,
    *,
    household_id: Optional[str] = None,
    column: str = "url_slug",
    fallback: str = "item",
) -> str:
    """First free slug for ``name``, appending -1, -2, ... on collision.

    Uniqueness is per household when ``household_id`` is given, global otherwise.
    Pending rows must be flushed first; sessions run with autoflush off.
    """
    slug_column = getattr(model, column)
    slug_base = generate_slug(name, fallback)
    slug = slug_base

    counter = 1
    while True:
        stmt = select(model.id).where(slug_column == slug)
        if household_id is not None:
            stmt = stmt.where(model.household_id == household_id)
        if db.scalar(stmt.limit(1)) is None:
            return slug
        slug = f"{slug_base}-{counter}"
        counter += 1

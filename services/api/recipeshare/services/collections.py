import logging
from typing import Any, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db import unit_of_work
from ..errors import InvalidUpdate, NotFound, NotOwned
from ..models import Collection, CollectionRecipe
from ..settings import settings
from ..storage import BlobStore
from .assets import cleanup_after_commit
from .ownership import collection_access, readable_collections_query
from .slugs import unique_slug

logger = logging.getLogger("recipeshare.collections")

IMAGE_COLUMNS = {"light": "filename", "dark": "filename_dark"}
EDITABLE_FIELDS = ("title", "subtitle", "is_public")
REQUIRED_FIELDS = ("title", "is_public")


def list_collections(db: Session, household_id: str) -> list[dict]:
    """Every readable collection with its access level, owned ones first."""
    counts = dict(db.execute(
        select(CollectionRecipe.collection_id, func.count(CollectionRecipe.id))
        .group_by(CollectionRecipe.collection_id)
    ).all())

    items = []
    for collection in db.scalars(readable_collections_query(household_id).order_by(Collection.title)).all():
        items.append({
            "collection": collection,
            "access_level": collection_access(db, household_id, collection.id),
            "recipe_count": counts.get(collection.id, 0),
        })
    order = {"owned": 0, "subscribed": 1, "public": 2}
    items.sort(key=lambda item: order[item["access_level"]])
    return items


def get_owned_collection(db: Session, household_id: str, collection_id: str) -> Collection:
    """Collection for a mutation; NotFound if invisible, NotOwned if only readable."""
    access = collection_access(db, household_id, collection_id)
    if access is None:
        raise NotFound("Collection not found", code="COLLECTION_NOT_FOUND")
    if access != "owned":
        raise NotOwned("You can only modify collections owned by your household")
    return db.get(Collection, collection_id)


def create_collection(db: Session, household_id: str, data: Mapping[str, Any]) -> Collection:
    with unit_of_work(db, operation="collection create"):
        collection = Collection(
            household_id=household_id,
            title=data["title"],
            subtitle=data.get("subtitle"),
            is_public=bool(data.get("is_public", False)),
            filename=settings.default_collection_filename,
            filename_dark=settings.default_collection_filename_dark,
            url_slug=unique_slug(db, Collection, data["title"], household_id=household_id, fallback="collection"),
        )
        db.add(collection)

    logger.info(f"Collection {collection.id} created by household {household_id}")
    return collection


def update_collection(db: Session, household_id: str, collection_id: str, changes: Mapping[str, Any]) -> Collection:
    """Owner-only edit of title, subtitle and visibility. Collections never fork."""
    for key in REQUIRED_FIELDS:
        if key in changes and changes[key] is None:
            raise InvalidUpdate(f"Field {key} cannot be empty", details={"field": key})

    with unit_of_work(db, operation="collection update"):
        collection = get_owned_collection(db, household_id, collection_id)
        for key in EDITABLE_FIELDS:
            if key in changes:
                setattr(collection, key, changes[key])
    return collection


def revert_collection_images(
    db: Session,
    household_id: str,
    collection_id: str,
    *,
    store: Optional[BlobStore] = None,
) -> tuple[Collection, list[str], Optional[str]]:
    """Point both images back at the shared defaults, then sweep the old versions.

    Returns ``(collection, deleted, warning)``.
    """
    with unit_of_work(db, operation="collection image revert"):
        collection = get_owned_collection(db, household_id, collection_id)
        previous = [collection.filename, collection.filename_dark]
        collection.filename = settings.default_collection_filename
        collection.filename_dark = settings.default_collection_filename_dark

    logger.info(f"Collection {collection_id} images reverted to defaults")
    if store is None:
        return collection, [], None
    deleted, warning = cleanup_after_commit(db, store, previous, "collections")
    return collection, deleted, warning

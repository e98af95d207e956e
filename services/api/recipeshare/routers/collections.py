import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_household
from ..models import Household
from ..schemas import (
    AssetUploadOut,
    CollectionCreate,
    CollectionDeleteOut,
    CollectionListItem,
    CollectionOut,
    CollectionUpdate,
    SubscriptionOut,
)
from ..services import collections as collection_service
from ..services.assets import replace_asset, validate_upload
from ..services.deletion import delete_collection
from ..services.subscriptions import toggle_subscription
from ..storage import BlobStore, get_store

logger = logging.getLogger("recipeshare.collections")

router = APIRouter(prefix="/collections", tags=["collections"])


def upload_content_type(request: Request) -> str:
    return (request.headers.get("content-type") or "").split(";")[0].strip().lower()


@router.get("", response_model=List[CollectionListItem])
def list_collections(
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
):
    """Collections the household owns, subscribes to, or can see as public."""
    items = collection_service.list_collections(db, household.id)
    return [
        CollectionListItem(
            **CollectionOut.model_validate(item["collection"]).model_dump(),
            access_level=item["access_level"],
            recipe_count=item["recipe_count"],
        )
        for item in items
    ]


@router.post("", response_model=CollectionOut, status_code=201)
def create_collection(
    data: CollectionCreate,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
):
    return collection_service.create_collection(db, household.id, data.model_dump())


@router.patch("/{collection_id}", response_model=CollectionOut)
def update_collection(
    collection_id: str,
    data: CollectionUpdate,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
):
    """Edit title, subtitle or visibility. Owner only; collections are never forked by edits."""
    return collection_service.update_collection(
        db, household.id, collection_id, data.model_dump(exclude_unset=True)
    )


@router.delete("/{collection_id}", response_model=CollectionDeleteOut)
def remove_collection(
    collection_id: str,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
    store: BlobStore = Depends(get_store),
):
    warning = delete_collection(db, household.id, collection_id, store=store)
    return CollectionDeleteOut(
        collection_id=collection_id,
        message="Collection deleted successfully",
        warning=warning,
    )


@router.post("/{collection_id}/toggle-subscription", response_model=SubscriptionOut)
def toggle_collection_subscription(
    collection_id: str,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
):
    subscribed = toggle_subscription(db, household.id, collection_id)
    return SubscriptionOut(collection_id=collection_id, subscribed=subscribed)


@router.put("/{collection_id}/image", response_model=AssetUploadOut)
async def upload_collection_image(
    collection_id: str,
    request: Request,
    variant: str = Query("light", pattern="^(light|dark)$"),
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
    store: BlobStore = Depends(get_store),
):
    """Upload a new version of the light or dark collection image (raw image body)."""
    collection = collection_service.get_owned_collection(db, household.id, collection_id)
    data = await request.body()
    content_type = upload_content_type(request)
    extension = validate_upload(data, content_type, kind="image")

    filename, url, deleted, warning = replace_asset(
        db,
        store,
        entity=collection,
        column=collection_service.IMAGE_COLUMNS[variant],
        scope="collections",
        data=data,
        content_type=content_type,
        extension=extension,
        title=collection.title,
    )
    return AssetUploadOut(filename=filename, url=url, deleted_files=deleted, warning=warning)


@router.post("/{collection_id}/image/revert")
def revert_collection_image(
    collection_id: str,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
    store: BlobStore = Depends(get_store),
):
    """Switch both images back to the shared defaults."""
    collection, deleted, warning = collection_service.revert_collection_images(
        db, household.id, collection_id, store=store
    )
    return {
        "collection": CollectionOut.model_validate(collection).model_dump(),
        "deleted_files": deleted,
        "warning": warning,
    }

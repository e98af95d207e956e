import logging
from typing import List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_household
from ..infra.idempotency import idempotency_precheck, idempotency_store_result, idempotency_clear_key
from ..models import Household
from ..schemas import (
    AssetUploadOut,
    ForkOut,
    RecipeCreate,
    RecipeDeleteOut,
    RecipeIngredientIn,
    RecipeLinkIn,
    RecipeLinkOut,
    RecipeMutationOut,
    RecipeOut,
    RecipeUpdate,
)
from ..services import recipes as recipe_service
from ..services.assets import replace_asset, validate_upload
from ..services.deletion import delete_recipe, remove_recipe_from_collection
from ..storage import BlobStore, get_store
from .collections import upload_content_type

logger = logging.getLogger("recipeshare.recipes")

router = APIRouter(tags=["recipes"])

ASSET_COLUMNS = {"image": "image_filename", "pdf": "pdf_filename"}


def _mutation_response(db: Session, recipe, fork) -> RecipeMutationOut:
    return RecipeMutationOut(
        recipe=RecipeOut(**recipe_service.recipe_to_dict(db, recipe)),
        fork=ForkOut(**fork.to_dict()),
    )


@router.post("/collections/{collection_id}/recipes", response_model=RecipeOut, status_code=201)
def create_recipe(
    collection_id: str,
    data: RecipeCreate,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
):
    """Create a recipe in a collection the household owns."""
    recipe = recipe_service.create_recipe(db, household.id, collection_id, data.model_dump())
    return RecipeOut(**recipe_service.recipe_to_dict(db, recipe))


@router.post("/collections/{collection_id}/recipes/link", response_model=RecipeLinkOut)
def link_recipes(
    collection_id: str,
    data: RecipeLinkIn,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
):
    """Add existing readable recipes to a collection the household owns.

    Recipes are linked, not copied; a later edit through this collection forks them.
    """
    linked, skipped = recipe_service.link_recipes(db, household.id, collection_id, data.recipe_ids)
    if linked:
        message = f"Added {len(linked)} recipe{'' if len(linked) == 1 else 's'} to the collection"
    else:
        message = "All selected recipes are already in the collection"
    return RecipeLinkOut(collection_id=collection_id, message=message, linked=linked, skipped=skipped)


@router.get("/collections/{collection_id}/recipes/{recipe_id}", response_model=RecipeOut)
def get_recipe(
    collection_id: str,
    recipe_id: str,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
):
    recipe = recipe_service.get_recipe_in_collection(db, household.id, collection_id, recipe_id)
    return RecipeOut(**recipe_service.recipe_to_dict(db, recipe))


@router.patch("/collections/{collection_id}/recipes/{recipe_id}", response_model=RecipeMutationOut)
def update_recipe(
    collection_id: str,
    recipe_id: str,
    data: RecipeUpdate,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
):
    """Update recipe details.

    Editing a recipe the household does not own edits a private copy; the
    ``fork`` block tells the client which ids to navigate to.
    """
    recipe, fork = recipe_service.update_recipe(
        db, household.id, collection_id, recipe_id, data.model_dump(exclude_unset=True)
    )
    return _mutation_response(db, recipe, fork)


@router.put("/collections/{collection_id}/recipes/{recipe_id}/ingredients", response_model=RecipeMutationOut)
def replace_recipe_ingredients(
    collection_id: str,
    recipe_id: str,
    lines: List[RecipeIngredientIn],
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
):
    recipe, fork = recipe_service.replace_ingredients(
        db, household.id, collection_id, recipe_id, [line.model_dump() for line in lines]
    )
    return _mutation_response(db, recipe, fork)


async def _upload_recipe_asset(
    kind: str,
    collection_id: str,
    recipe_id: str,
    request: Request,
    db: Session,
    household: Household,
    store: BlobStore,
) -> AssetUploadOut:
    data = await request.body()
    content_type = upload_content_type(request)
    extension = validate_upload(data, content_type, kind=kind)

    recipe, fork = recipe_service.ensure_asset_target(db, household.id, collection_id, recipe_id)
    filename, url, deleted, warning = replace_asset(
        db,
        store,
        entity=recipe,
        column=ASSET_COLUMNS[kind],
        scope="recipes",
        data=data,
        content_type=content_type,
        extension=extension,
        title=recipe.name,
    )
    return AssetUploadOut(
        filename=filename,
        url=url,
        deleted_files=deleted,
        warning=warning,
        fork=ForkOut(**fork.to_dict()) if fork else None,
    )


@router.put("/collections/{collection_id}/recipes/{recipe_id}/image", response_model=AssetUploadOut)
async def upload_recipe_image(
    collection_id: str,
    recipe_id: str,
    request: Request,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
    store: BlobStore = Depends(get_store),
):
    """Upload a new image version (raw JPEG, PNG or WebP body)."""
    return await _upload_recipe_asset("image", collection_id, recipe_id, request, db, household, store)


@router.put("/collections/{collection_id}/recipes/{recipe_id}/pdf", response_model=AssetUploadOut)
async def upload_recipe_pdf(
    collection_id: str,
    recipe_id: str,
    request: Request,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
    store: BlobStore = Depends(get_store),
):
    """Upload a new PDF version (raw application/pdf body)."""
    return await _upload_recipe_asset("pdf", collection_id, recipe_id, request, db, household, store)


@router.delete("/collections/{collection_id}/recipes/{recipe_id}")
def unlink_recipe(
    collection_id: str,
    recipe_id: str,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
):
    """Remove a recipe from one of the household's collections. The recipe itself stays."""
    remove_recipe_from_collection(db, household.id, collection_id, recipe_id)
    return {"message": "Recipe removed from collection"}


@router.delete("/recipes/{recipe_id}", response_model=RecipeDeleteOut)
async def remove_recipe(
    recipe_id: str,
    request: Request,
    db: Session = Depends(get_db),
    household: Household = Depends(get_household),
    store: BlobStore = Depends(get_store),
):
    """Delete a recipe the household owns.

    Blocked while the household has it planned, archived while shopping
    history points at it, hard-deleted otherwise. Honors Idempotency-Key.
    """
    pre = await idempotency_precheck(request, household_id=household.id, route_key="recipe_delete")
    if isinstance(pre, JSONResponse):
        return pre

    try:
        result = delete_recipe(db, household.id, recipe_id, store=store)
    except Exception:
        if pre is not None:
            await idempotency_clear_key(pre[0])
        raise

    res = RecipeDeleteOut(
        recipe_id=recipe_id,
        outcome=result.outcome.value,
        archived=result.archived,
        message=result.message,
        deleted_ingredients=result.deleted_ingredient_names,
        deleted_files=result.deleted_files,
        warning=result.warning,
    )
    if pre is not None:
        redis_key, req_hash, _ = pre
        await idempotency_store_result(redis_key, req_hash, status=200, body=res.model_dump())
    return res

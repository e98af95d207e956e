from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import AssetSweepOut
from ..services.assets import sweep_unreferenced
from ..storage import BlobStore, get_store

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/assets/sweep", response_model=AssetSweepOut)
def sweep_assets(
    scope: str = Query(..., pattern="^(recipes|collections)$"),
    grace_seconds: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_store),
):
    """Delete stored blobs no collection or recipe row references.

    Blobs younger than ``grace_seconds`` (default from settings) are kept.
    """
    deleted, failed = sweep_unreferenced(db, store, scope, grace_seconds=grace_seconds)
    return AssetSweepOut(scope=scope, deleted=deleted, failed=failed)

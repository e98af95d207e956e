"""Versioned asset filenames and the orphan sweep.

Asset columns hold filenames shaped ``{base_hash}[_v{n}].{ext}``. The base
hash is stable for the life of an asset; every re-upload writes a new
version so a filename always denotes the same bytes and can be cached
forever. Old versions are swept only after the row pointing at the new one
has committed, and only when no other row (a fork, a shared default) still
points at them.

Blob keys are ``{scope}/{filename}`` where scope is ``recipes`` or
``collections``.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import AssetCleanupFailed, InvalidAsset, StorageFailure
from ..models import Collection, Recipe
from ..settings import settings
from ..storage import BlobStore

logger = logging.getLogger("recipeshare.assets")

SCOPES = ("recipes", "collections")
MIN_BASE_HASH_LENGTH = 8

_FILENAME_RE = re.compile(r"^(?P<base>[A-Za-z0-9_-]+?)(?:_v(?P<version>\d+))?\.(?P<ext>[A-Za-z0-9]+)$")

# Columns that can point at a blob, per owning model
ASSET_COLUMNS = {
    "collections": (Collection, (Collection.filename, Collection.filename_dark)),
    "recipes": (Recipe, (Recipe.image_filename, Recipe.pdf_filename)),
}

IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}
PDF_TYPES = {"application/pdf": "pdf"}


@dataclass(frozen=True)
class AssetName:
    base_hash: str
    version: int
    extension: str

    def __str__(self) -> str:
        if self.version <= 1:
            return f"{self.base_hash}.{self.extension}"
        return f"{self.base_hash}_v{self.version}.{self.extension}"

    def bump(self, extension: Optional[str] = None, to: Optional[int] = None) -> "AssetName":
        return AssetName(self.base_hash, to if to is not None else self.version + 1, extension or self.extension)


def parse_filename(filename: Optional[str]) -> Optional[AssetName]:
    """Split a stored filename into base hash, version and extension.

    A filename without a ``_vN`` suffix is version 1. Returns None for
    anything that does not look like an asset filename.
    """
    if not filename:
        return None
    match = _FILENAME_RE.match(filename)
    if not match:
        return None
    version = int(match.group("version")) if match.group("version") else 1
    return AssetName(match.group("base"), version, match.group("ext").lower())


def generate_base_hash(entity_id: str, title: str) -> str:
    """Stable, unguessable base name for an entity's first upload."""
    normalized = re.sub(r"[^a-z0-9]", "", title.lower())
    digest = hmac.new(
        settings.filename_secret.encode("utf-8"),
        f"{entity_id}-{normalized}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return digest[:32]


def next_version(current_filename: Optional[str], extension: str) -> Optional[str]:
    """Filename for the next version of an asset.

    Returns None when there is no parseable current filename; the caller then
    starts a fresh base hash.
    """
    current = parse_filename(current_filename)
    if current is None:
        return None
    return str(current.bump(extension=extension))


def is_protected(filename: str) -> bool:
    """Stock images exempt from sweeping when ``protect_default_images`` is set.

    Otherwise the defaults are reference-counted like any other blob: they
    survive while some collection still points at them.
    """
    if not settings.protect_default_images:
        return False
    return filename in (settings.default_collection_filename, settings.default_collection_filename_dark)


def blob_key(scope: str, filename: str) -> str:
    if scope not in SCOPES:
        raise ValueError(f"Unknown asset scope: {scope}")
    return f"{scope}/{filename}"


def list_versions(store: BlobStore, scope: str, base_hash: str) -> list[str]:
    """Stored filenames in ``scope`` sharing ``base_hash`` (any version, any extension)."""
    pattern = re.compile(rf"^{re.escape(base_hash)}(?:_v\d+)?\.[A-Za-z0-9]+$")
    prefix = blob_key(scope, base_hash)
    filenames = []
    for key in store.list_keys(prefix):
        name = key.rsplit("/", 1)[-1]
        if pattern.match(name):
            filenames.append(name)
    return filenames


def allocate_version(
    store: BlobStore,
    scope: str,
    current_filename: Optional[str],
    extension: str,
    *,
    entity_id: str,
    title: str,
) -> str:
    """Next free filename for an upload.

    Forks share base hashes, so two households can both be at ``abc_v2``;
    the version is bumped past anything already stored to avoid overwriting
    a blob another row still serves.
    """
    current = parse_filename(current_filename)
    if current is None or len(current.base_hash) < MIN_BASE_HASH_LENGTH or not re.fullmatch(r"[a-f0-9]+", current.base_hash):
        # No hash-based name yet (missing or a shared default): start a fresh base.
        # Light and dark images (or image and PDF) of one entity share this base
        current = AssetName(generate_base_hash(entity_id, title), 0, extension)

    highest = current.version
    for name in list_versions(store, scope, current.base_hash):
        parsed = parse_filename(name)
        if parsed is not None:
            highest = max(highest, parsed.version)
    return str(current.bump(extension=extension, to=highest + 1))


def is_orphan(db: Session, filename: str, *, excluding: Optional[tuple[str, str]] = None) -> bool:
    """True when no collection or recipe row other than ``excluding`` holds ``filename``.

    ``excluding`` is a ``(kind, id)`` pair, e.g. ``("collections", cid)``.
    """
    for kind, (model, columns) in ASSET_COLUMNS.items():
        stmt = select(model.id).where(or_(*(col == filename for col in columns)))
        if excluding is not None and excluding[0] == kind:
            stmt = stmt.where(model.id != excluding[1])
        if db.scalar(stmt.limit(1)) is not None:
            return False
    return True


def sweep_stale(
    db: Session,
    store: BlobStore,
    base_hash: Optional[str],
    scope: str,
    *,
    keep: Optional[str] = None,
    excluding: Optional[tuple[str, str]] = None,
) -> list[str]:
    """Delete every unreferenced stored version of ``base_hash``.

    ``keep`` (the filename just written) is never touched. Referenced versions
    such as shared defaults survive. Raises AssetCleanupFailed listing the
    files that could not be removed; the rest are still deleted.
    """
    if not base_hash or len(base_hash) < MIN_BASE_HASH_LENGTH:
        # Don't glob-delete with a short or missing hash
        return []

    deleted: list[str] = []
    failed: list[str] = []
    for name in list_versions(store, scope, base_hash):
        if name == keep or is_protected(name):
            continue
        if not is_orphan(db, name, excluding=excluding):
            logger.info(f"Keeping {scope}/{name}: still referenced")
            continue
        try:
            ok = store.delete(blob_key(scope, name))
        except Exception as e:
            logger.warning(f"Failed to delete {scope}/{name}: {e}")
            ok = False
        if ok:
            deleted.append(name)
        else:
            failed.append(name)

    if deleted:
        logger.info(f"Swept {len(deleted)} stale file(s) for {base_hash}: {', '.join(deleted)}")
    if failed:
        raise AssetCleanupFailed(failed, deleted)
    return deleted


def cleanup_after_commit(
    db: Session,
    store: BlobStore,
    filenames: list[Optional[str]],
    scope: str,
    *,
    keep: Optional[str] = None,
    excluding: Optional[tuple[str, str]] = None,
) -> tuple[list[str], Optional[str]]:
    """Best-effort sweep of the base hashes behind ``filenames``.

    Returns ``(deleted, warning)``. Never raises: the database is already
    consistent, so cleanup trouble is reported as a warning only.
    """
    deleted: list[str] = []
    problems: list[str] = []
    seen: set[str] = set()

    for filename in filenames:
        parsed = parse_filename(filename)
        if parsed is None or parsed.base_hash in seen:
            continue
        seen.add(parsed.base_hash)
        try:
            deleted.extend(sweep_stale(db, store, parsed.base_hash, scope, keep=keep, excluding=excluding))
        except AssetCleanupFailed as e:
            deleted.extend(e.deleted)
            problems.extend(e.failed)
        except Exception as e:
            logger.warning(f"Asset cleanup for {parsed.base_hash} failed: {e}")
            problems.append(str(parsed))

    warning = f"File cleanup failed: {', '.join(problems)}" if problems else None
    if warning:
        logger.warning(warning)
    return deleted, warning


def validate_upload(data: bytes, content_type: str, *, kind: str) -> str:
    """Check type, size and magic bytes of an upload; returns the extension."""
    if not data:
        raise InvalidAsset("File cannot be empty")

    if kind == "pdf":
        extension = PDF_TYPES.get(content_type)
        if extension is None:
            raise InvalidAsset("Only PDF files are allowed")
        if len(data) > settings.max_pdf_bytes:
            raise InvalidAsset(f"PDF must be smaller than {settings.max_pdf_bytes // (1024 * 1024)}MB")
        if not data.startswith(b"%PDF"):
            raise InvalidAsset("Invalid PDF data")
        return extension

    extension = IMAGE_TYPES.get(content_type)
    if extension is None:
        raise InvalidAsset("Only JPEG, PNG, and WebP images are allowed")
    if len(data) > settings.max_image_bytes:
        raise InvalidAsset(f"Image must be smaller than {settings.max_image_bytes // (1024 * 1024)}MB")

    head = data[:12]
    valid = {
        "jpg": head[:2] == b"\xff\xd8",
        "png": head[:4] == b"\x89PNG",
        "webp": head[:4] == b"RIFF" and head[8:12] == b"WEBP",
    }[extension]
    if not valid:
        raise InvalidAsset("Invalid image data")
    return extension


def replace_asset(
    db: Session,
    store: BlobStore,
    *,
    entity,
    column: str,
    scope: str,
    data: bytes,
    content_type: str,
    extension: str,
    title: str,
) -> tuple[str, str, list[str], Optional[str]]:
    """Upload a new version of an entity's asset and repoint the row.

    Order: write the blob, update the row, commit, then sweep the old base
    hash. A crash in between leaves at worst an unreferenced blob, never a row
    pointing at a missing file. ``db`` may already hold uncommitted work
    (e.g. a fork); it commits together with the filename change.

    Returns ``(filename, url, deleted, warning)``.
    """
    kind = "collections" if isinstance(entity, Collection) else "recipes"
    previous = getattr(entity, column)
    filename = allocate_version(store, scope, previous, extension, entity_id=entity.id, title=title)

    try:
        url = store.put_bytes(blob_key(scope, filename), data, content_type=content_type)
    except Exception as e:
        db.rollback()
        logger.error(f"Upload of {scope}/{filename} failed: {e}")
        raise StorageFailure("File upload failed", code="UPLOAD_FAILED") from e

    try:
        setattr(entity, column, filename)
        db.commit()
    except Exception as e:
        db.rollback()
        # Row never pointed at it; drop the fresh blob
        try:
            store.delete(blob_key(scope, filename))
        except Exception as cleanup_error:
            logger.warning(f"Failed to remove uploaded {filename} after DB failure: {cleanup_error}")
        if isinstance(e, SQLAlchemyError):
            raise StorageFailure("Failed to update asset filename") from e
        raise

    logger.info(f"Updated {kind}/{entity.id}.{column}: {previous} -> {filename}")
    deleted, warning = cleanup_after_commit(
        db, store, [previous], scope, keep=filename
    )
    return filename, url, deleted, warning


def sweep_unreferenced(
    db: Session,
    store: BlobStore,
    scope: str,
    *,
    grace_seconds: Optional[int] = None,
) -> tuple[list[str], list[str]]:
    """Delete every stored blob in ``scope`` that no row references.

    Reclaims blobs stranded by a crash between upload and commit. Blobs
    written less than ``grace_seconds`` ago (default from settings) are left
    alone: ``replace_asset`` writes the blob before the row that points at it
    commits. Returns ``(deleted, failed)``.
    """
    if grace_seconds is None:
        grace_seconds = settings.asset_sweep_grace_seconds
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=grace_seconds)

    _, columns = ASSET_COLUMNS[scope]
    referenced: set[str] = set()
    for column in columns:
        referenced.update(v for v in db.scalars(select(column).where(column.is_not(None))).all() if v)

    deleted: list[str] = []
    failed: list[str] = []
    for key in store.list_keys(f"{scope}/"):
        name = key.rsplit("/", 1)[-1]
        if name in referenced or is_protected(name) or parse_filename(name) is None:
            continue
        if grace_seconds > 0:
            modified = store.last_modified(key)
            if modified is None or modified > cutoff:
                continue
        # Re-check across every scope's columns before deleting
        if not is_orphan(db, name):
            continue
        try:
            ok = store.delete(key)
        except Exception as e:
            logger.warning(f"Failed to delete {key}: {e}")
            ok = False
        (deleted if ok else failed).append(name)

    logger.info(f"Unreferenced sweep of {scope}: deleted {len(deleted)}, failed {len(failed)}")
    return deleted, failed

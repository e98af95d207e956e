"""Blob storage backends.

Both backends store opaque bytes under a flat key (``{scope}/{filename}``)
and know nothing about versions or ownership; that lives in
``services.assets``.
"""

from datetime import datetime
from typing import Optional, Protocol

from ..settings import settings


class BlobStore(Protocol):
    def put_bytes(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str: ...

    def delete(self, key: str) -> bool: ...

    def exists(self, key: str) -> bool: ...

    def list_keys(self, prefix: str) -> list[str]: ...

    def last_modified(self, key: str) -> Optional[datetime]: ...


_store: BlobStore | None = None


def get_store() -> BlobStore:
    """Return the configured backend (FastAPI dependency)."""
    global _store
    if _store is None:
        if settings.storage_backend == "s3":
            from .s3_compat import S3CompatStore

            _store = S3CompatStore(
                endpoint_url=settings.object_store_endpoint,
                region_name=settings.object_store_region,
                access_key_id=settings.object_store_access_key_id,
                secret_access_key=settings.object_store_secret_access_key,
                bucket=settings.object_store_bucket,
                public_base_url=settings.object_public_base_url,
            )
        else:
            from .local import LocalStorage

            _store = LocalStorage()
    return _store

import os
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..settings import settings

logger = logging.getLogger("recipeshare.storage")


def _default_root() -> Path:
    if settings.media_root:
        return Path(settings.media_root)
    return Path(os.getcwd()) / "media"


class LocalStorage:
    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root else _default_root()
        if not self.root.exists():
            self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        # Ensure strict path safety (simple check)
        if ".." in key or key.startswith("/"):
            raise ValueError("Invalid storage key")
        return self.root / key

    def put_bytes(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """
        Save bytes to local disk.
        key: {scope}/{filename}, e.g. recipes/3f2a..._v2.jpg
        Returns: Public relative URL
        """
        file_path = self._path(key)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, "wb") as f:
            f.write(data)

        logger.info(f"Saved {len(data)} bytes to {file_path}")
        return f"/media/{key}"

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def last_modified(self, key: str) -> Optional[datetime]:
        path = self._path(key)
        if not path.exists():
            return None
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)

    def delete(self, key: str) -> bool:
        """
        Delete file from local disk.
        Returns True if deleted or didn't exist, False on error.
        """
        try:
            file_path = self._path(key)
        except ValueError:
            logger.warning(f"Invalid delete key: {key}")
            return False

        try:
            if file_path.exists():
                file_path.unlink()
                logger.info(f"Deleted file {file_path}")
            return True
        except OSError as e:
            logger.error(f"Failed to delete {file_path}: {e}")
            return False

    def list_keys(self, prefix: str) -> list[str]:
        """Keys under a directory-style prefix ("recipes/" lists the recipes scope)."""
        directory, _, name_prefix = prefix.rpartition("/")
        base = self.root / directory if directory else self.root
        if not base.is_dir():
            return []
        keys = []
        for entry in sorted(base.iterdir()):
            if entry.is_file() and entry.name.startswith(name_prefix):
                keys.append(f"{directory}/{entry.name}" if directory else entry.name)
        return keys

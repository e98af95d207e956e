"""Typed failures raised by the ownership, fork, deletion and asset services.

Each error carries a machine-readable ``code`` and a suggested ``http_status``
so the API layer can render it without knowing the service internals.
"""

from typing import Any, Mapping, Optional


class RecipeShareError(Exception):
    """Base class for domain errors.

    Attributes:
        message: human-readable message
        details: optional mapping with extra context
        code: machine-readable error code
        http_status: suggested HTTP status code for handlers
    """

    http_status = 400
    default_code = "ERROR"
    default_message = "Request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
        code: Optional[str] = None,
    ):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.details = dict(details) if details else None
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload

    def __str__(self) -> str:
        return self.message


class NotOwned(RecipeShareError):
    """The household lacks write access to the entity."""

    http_status = 403
    default_code = "PERMISSION_DENIED"
    default_message = "You can only modify content owned by your household"


class NotFound(RecipeShareError):
    """The entity is absent or not visible to the household."""

    http_status = 404
    default_code = "NOT_FOUND"
    default_message = "Not found"


class HasActivePlans(RecipeShareError):
    http_status = 409
    default_code = "PLANNED_WEEKS_EXIST"

    def __init__(self, count: int):
        super().__init__(
            f"Cannot delete recipe: it is used in {count} planned week{'' if count == 1 else 's'}. "
            "Remove it from all planned weeks first.",
            details={"count": count},
        )
        self.count = count


class ReferentialConflict(RecipeShareError):
    """Shopping history references the recipe; resolved by archiving."""

    http_status = 409
    default_code = "SHOPPING_HISTORY_EXISTS"
    default_message = "Recipe is referenced by shopping history"


class CollectionNotEmpty(RecipeShareError):
    http_status = 409
    default_code = "COLLECTION_NOT_EMPTY"

    def __init__(self, count: int):
        super().__init__(
            f"Cannot delete collection: it still contains {count} recipe{'' if count == 1 else 's'}",
            details={"count": count},
        )
        self.count = count


class InvalidUpdate(RecipeShareError):
    """A field that cannot be edited, or a null for a required field."""

    http_status = 400
    default_code = "INVALID_FIELD"
    default_message = "Invalid update"


class InvalidAsset(RecipeShareError):
    http_status = 400
    default_code = "INVALID_FILE"
    default_message = "Invalid file upload"


class AssetCleanupFailed(RecipeShareError):
    """Post-commit blob cleanup did not finish. Never fatal."""

    http_status = 200
    default_code = "ASSET_CLEANUP_FAILED"

    def __init__(self, failed: list[str], deleted: Optional[list[str]] = None):
        super().__init__(
            f"File cleanup failed for {', '.join(failed)}",
            details={"failed": list(failed), "deleted": list(deleted or [])},
        )
        self.failed = list(failed)
        self.deleted = list(deleted or [])


class StorageFailure(RecipeShareError):
    """Relational or blob I/O failed; the transaction was rolled back."""

    http_status = 500
    default_code = "STORAGE_ERROR"
    default_message = "Storage operation failed"

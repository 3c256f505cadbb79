"""
Error taxonomy for the catalog service.

ValidationError and NotFoundError are client-facing and their message is
returned as-is. Everything else is logged server-side and surfaced as a
generic 500.
"""
from typing import List, Optional


class CatalogError(Exception):
    """Base class for all catalog errors"""
    status_code = 500
    public_message = "Internal server error"


class ValidationError(CatalogError):
    status_code = 400

    @property
    def public_message(self) -> str:
        return str(self)


class NotFoundError(CatalogError):
    status_code = 404

    @property
    def public_message(self) -> str:
        return str(self)


class StorageError(CatalogError):
    public_message = "Storage operation failed"


class UploadTimeoutError(StorageError):
    public_message = "Upload timed out"


class PartialUploadFailure(StorageError):
    """
    A multi-file upload batch failed part-way.

    succeeded_keys are the objects that made it into the store and must be
    rolled back by the caller; failed_at is the index of the first failing
    upload (None when the batch hit its deadline).
    """

    def __init__(self, succeeded_keys: List[str], failed_at: Optional[int], cause: Exception):
        super().__init__(f"Upload batch failed at {failed_at}: {cause}")
        self.succeeded_keys = list(succeeded_keys)
        self.failed_at = failed_at
        self.cause = cause

    @property
    def public_message(self) -> str:
        if isinstance(self.cause, UploadTimeoutError):
            return UploadTimeoutError.public_message
        return StorageError.public_message


class PersistenceError(CatalogError):
    public_message = "Database operation failed"

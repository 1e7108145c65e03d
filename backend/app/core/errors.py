"""
Error taxonomy for photo ingestion.

Every error carries the HTTP status, a stable error code and the pipeline
stage that failed, so operators can tell storage failures (nothing was
written) from persistence failures (a blob may have been left behind).
"""

from typing import List, Optional


class IngestionError(Exception):
    """Base error for the ingestion pipeline."""

    status_code: int = 500
    error_code: str = "INGESTION_ERROR"
    stage: str = "ingestion"
    message: str = "Photo ingestion failed"

    def __init__(self, message: Optional[str] = None):
        if message:
            self.message = message
        # Records other files of the same batch persisted before this error
        # was reported. They are not rolled back.
        self.persisted: List = []
        super().__init__(self.message)


class ValidationError(IngestionError):
    status_code = 400
    error_code = "VALIDATION_ERROR"
    stage = "validation"
    message = "Invalid upload batch"


class StorageError(IngestionError):
    status_code = 502
    error_code = "STORAGE_ERROR"
    stage = "storage"
    message = "Error storing file"


class PersistenceError(IngestionError):
    status_code = 500
    error_code = "PERSISTENCE_ERROR"
    stage = "persistence"
    message = "Database error"


class OrphanedBlobError(IngestionError):
    """The blob was stored but its metadata record could not be written."""

    status_code = 500
    error_code = "ORPHANED_BLOB"
    stage = "persistence"
    message = "File stored but its record could not be saved"

    def __init__(self, namespace: str, blob_id: str, message: Optional[str] = None):
        self.namespace = namespace
        self.blob_id = blob_id
        super().__init__(message)


class DuplicateUserError(PersistenceError):
    status_code = 409
    error_code = "DUPLICATE_USER"
    message = "User already exists"

from fastapi import Request
from fastapi.responses import JSONResponse

from .errors import IngestionError, OrphanedBlobError


async def ingestion_error_handler(request: Request, exc: IngestionError) -> JSONResponse:
    """Render ingestion errors with the stage that failed."""
    content = {
        "error_code": exc.error_code,
        "message": exc.message,
        "stage": exc.stage,
    }
    if isinstance(exc, OrphanedBlobError):
        content["blob_id"] = exc.blob_id
    if exc.persisted:
        content["persisted"] = [record.id for record in exc.persisted]

    return JSONResponse(status_code=exc.status_code, content=content)

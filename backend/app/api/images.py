import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, UploadFile

from ..core.deps import get_current_identity, get_pipeline
from ..core.errors import ValidationError
from ..ingestion import PhotoEventsPipeline, UploadedFile
from ..schemas.image import BatchUploadResponse

logger = logging.getLogger(__name__)

router = APIRouter()

READ_CHUNK_SIZE = 1024 * 1024


async def read_upload(upload: UploadFile, max_size: Optional[int]) -> bytes:
    """Read one multipart part, stopping as soon as it exceeds ``max_size``."""
    name = upload.filename or "upload"
    too_large = ValidationError(
        f"{name} is too large. Maximum size: {(max_size or 0) / (1024*1024):.1f}MB"
    )
    if max_size and upload.size is not None and upload.size > max_size:
        raise too_large

    chunks = []
    total = 0
    while chunk := await upload.read(READ_CHUNK_SIZE):
        total += len(chunk)
        if max_size and total > max_size:
            raise too_large
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("", response_model=BatchUploadResponse)
async def upload_images(
    file: List[UploadFile] = File(...),
    identity: str = Depends(get_current_identity),
    pipeline: PhotoEventsPipeline = Depends(get_pipeline),
):
    """Upload a batch of photos and group them into events."""
    uploads = [
        UploadedFile(
            content=await read_upload(upload, pipeline.max_file_size),
            content_type=upload.content_type,
            filename=upload.filename,
        )
        for upload in file
    ]

    result = await pipeline.process(identity, uploads)
    logger.info(
        f"Batch of {len(uploads)} photos for {identity}: "
        f"{len(result.events)} events, {len(result.unclustered)} unclustered"
    )
    return BatchUploadResponse.from_result(result)

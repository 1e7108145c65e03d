"""
Photo ingestion: store each upload, record its metadata, group the batch into events.

Per file, the IngestionWorker:
1. Extracts EXIF capture time and GPS position
2. Stores the bytes in the owner's blob namespace
3. Inserts the ImageRecord joined to the blob by its object key

The BatchCoordinator runs the worker concurrently over a batch and fails the
batch as a unit, and PhotoEventsPipeline clusters the stored records into
events once the whole batch is in.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set, Tuple

from event_core import DEFAULT_GAP_SIGMA, cluster_into_events, extract_metadata, split_undated

from .core.config import Settings
from .core.errors import IngestionError, OrphanedBlobError, ValidationError
from .core.protocols import BlobStoreProtocol, RecordStoreProtocol
from .models.image import CONTENT_TYPE_MAX_LENGTH, ImageRecord

logger = logging.getLogger(__name__)


@dataclass
class UploadedFile:
    """Raw content of one upload, alive only for the duration of its ingestion."""

    content: bytes
    content_type: Optional[str] = None
    filename: Optional[str] = None


@dataclass
class BatchResult:
    events: List[List[ImageRecord]]
    # Records without a capture time, which cannot be placed in any event
    unclustered: List[ImageRecord] = field(default_factory=list)


class IngestionWorker:
    """Ingests a single file. Safe to run concurrently for distinct files."""

    def __init__(
        self,
        blob_store: BlobStoreProtocol,
        records: RecordStoreProtocol,
        max_file_size: Optional[int] = None,
    ):
        self.blob_store = blob_store
        self.records = records
        self.max_file_size = max_file_size

    async def ingest(self, owner: str, upload: UploadedFile) -> ImageRecord:
        """
        Store one upload and persist its record.

        Raises:
            ValidationError: Empty, oversized or mislabelled upload; nothing was written.
            StorageError: The blob store rejected the write; nothing was written.
            OrphanedBlobError: The blob was written but the record was not.
        """
        name = upload.filename or "upload"
        if not upload.content:
            raise ValidationError(f"{name} is empty")
        if self.max_file_size and len(upload.content) > self.max_file_size:
            raise ValidationError(
                f"{name} is too large. Maximum size: {self.max_file_size / (1024*1024):.1f}MB"
            )
        if upload.content_type and len(upload.content_type) > CONTENT_TYPE_MAX_LENGTH:
            raise ValidationError(f"{name} has an invalid content type")

        metadata = await asyncio.to_thread(extract_metadata, upload.content)
        if metadata.capture_time is None:
            logger.info(f"No capture time found in EXIF for {name}")

        namespace = self.blob_store.namespace_for(owner)
        await asyncio.to_thread(self.blob_store.ensure_namespace_exists, namespace)
        blob_id = await asyncio.to_thread(
            self.blob_store.put,
            namespace,
            upload.content,
            upload.content_type,
            metadata.image_format,
        )

        record = ImageRecord(
            id=blob_id,
            owner=owner,
            capture_time=metadata.capture_time,
            latitude=metadata.latitude,
            longitude=metadata.longitude,
            content_type=upload.content_type,
            size=len(upload.content),
        )

        try:
            await asyncio.to_thread(self.records.insert_image_record, record)
        except Exception as e:
            # No retry and no blob cleanup here: the caller decides
            logger.error(f"Record insert failed for stored blob {namespace}/{blob_id}: {e}")
            raise OrphanedBlobError(namespace, blob_id) from e

        logger.debug(f"Ingested {name} as {blob_id}")
        return record


class BatchCoordinator:
    """Fans a batch out to the IngestionWorker and succeeds or fails it as a unit."""

    def __init__(
        self,
        worker: IngestionWorker,
        concurrency: int = 8,
        max_batch_size: Optional[int] = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.worker = worker
        self.concurrency = concurrency
        self.max_batch_size = max_batch_size

    async def ingest_batch(self, owner: str, uploads: Sequence[UploadedFile]) -> List[ImageRecord]:
        """
        Ingest every upload concurrently, at most ``concurrency`` at a time.

        All-or-nothing: the first failure fails the batch. Ingestions already
        in flight are drained before the failure is raised and uploads that
        never started are cancelled. Records persisted for other files are
        not rolled back; they are attached to the raised error as
        ``error.persisted``. Cancelling the batch follows the same path:
        queued uploads are cancelled, in-flight ones are drained and logged,
        then the cancellation propagates.

        Returns:
            The created records, in upload order.
        """
        if not uploads:
            raise ValidationError("No files")
        if self.max_batch_size and len(uploads) > self.max_batch_size:
            raise ValidationError(f"Too many files. Maximum per batch: {self.max_batch_size}")

        slots = asyncio.Semaphore(self.concurrency)
        started: Set[int] = set()

        async def dispatch(index: int, upload: UploadedFile) -> ImageRecord:
            async with slots:
                started.add(index)
                return await self.worker.ingest(owner, upload)

        tasks = [asyncio.create_task(dispatch(i, upload)) for i, upload in enumerate(uploads)]
        logger.info(f"Ingesting batch of {len(tasks)} files for {owner}")

        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            logger.warning(f"Batch for {owner} cancelled, draining files already in flight")
            await self._drain(tasks, started)
            records, _, _ = self._collect(tasks, None)
            self._report_persisted(records)
            raise

        first_error = self._first_error(tasks, done)
        await self._drain(tasks, started)
        records, failures, skipped = self._collect(tasks, first_error)

        if first_error is None:
            logger.info(f"Batch of {len(records)} files ingested for {owner}")
            return records

        logger.error(
            f"Batch failed at {getattr(first_error, 'stage', 'ingestion')} stage: "
            f"{self._describe(first_error)} ({failures} failed, {skipped} not started)"
        )
        self._report_persisted(records)
        if isinstance(first_error, IngestionError):
            first_error.persisted = records
        raise first_error

    @staticmethod
    async def _drain(tasks: List[asyncio.Task], started: Set[int]) -> None:
        """Cancel uploads still waiting for a slot and wait out the ones in flight."""
        for index, task in enumerate(tasks):
            if index not in started and not task.done():
                task.cancel()
        interrupted = False
        pending = [task for task in tasks if not task.done()]
        while pending:
            # Cancelling this wait leaves the tasks running, so keep waiting them out
            try:
                await asyncio.wait(pending)
            except asyncio.CancelledError:
                interrupted = True
            pending = [task for task in tasks if not task.done()]
        if interrupted:
            raise asyncio.CancelledError()

    def _collect(
        self, tasks: List[asyncio.Task], first_error: Optional[BaseException]
    ) -> Tuple[List[ImageRecord], int, int]:
        records: List[ImageRecord] = []
        failures = 0
        skipped = 0
        for index, task in enumerate(tasks):
            if task.cancelled():
                skipped += 1
            elif task.exception() is not None:
                failures += 1
                error = task.exception()
                if error is not first_error:
                    logger.error(f"File {index} of batch failed: {self._describe(error)}")
            else:
                records.append(task.result())
        return records, failures, skipped

    @staticmethod
    def _report_persisted(records: List[ImageRecord]) -> None:
        if records:
            logger.warning(
                f"{len(records)} files of the unfinished batch remain persisted: "
                f"{', '.join(record.id for record in records)}"
            )

    @staticmethod
    def _first_error(tasks: List[asyncio.Task], done: Set[asyncio.Task]) -> Optional[BaseException]:
        # Several tasks may fail in the same round; upload order breaks the tie
        for task in tasks:
            if task in done and not task.cancelled() and task.exception() is not None:
                return task.exception()
        return None

    @staticmethod
    def _describe(error: BaseException) -> str:
        if isinstance(error, OrphanedBlobError):
            return f"{error.message} (orphaned blob {error.namespace}/{error.blob_id})"
        return str(error) or type(error).__name__


class PhotoEventsPipeline:
    """Ingests a batch, then partitions its records into events."""

    def __init__(self, coordinator: BatchCoordinator, sigma: float = DEFAULT_GAP_SIGMA):
        self.coordinator = coordinator
        self.sigma = sigma

    @property
    def max_file_size(self) -> Optional[int]:
        return self.coordinator.worker.max_file_size

    async def process(self, owner: str, uploads: Sequence[UploadedFile]) -> BatchResult:
        records = await self.coordinator.ingest_batch(owner, uploads)

        dated, undated = split_undated(records)
        events = cluster_into_events(dated, sigma=self.sigma) if dated else []
        if undated:
            logger.warning(f"{len(undated)} of {len(records)} photos have no capture time and were not clustered")

        return BatchResult(events=events, unclustered=undated)


def build_pipeline(
    blob_store: BlobStoreProtocol,
    records: RecordStoreProtocol,
    settings: Settings,
) -> PhotoEventsPipeline:
    """Wire the worker, coordinator and pipeline from explicit dependencies."""
    worker = IngestionWorker(blob_store, records, max_file_size=settings.MAX_FILE_SIZE)
    coordinator = BatchCoordinator(
        worker,
        concurrency=settings.INGEST_CONCURRENCY,
        max_batch_size=settings.MAX_BATCH_SIZE,
    )
    return PhotoEventsPipeline(coordinator, sigma=settings.EVENT_GAP_SIGMA)

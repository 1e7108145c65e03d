import io
import threading
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

import piexif
import pytest
from PIL import Image

from backend.app.core.errors import PersistenceError, StorageError
from backend.app.core.storage import generate_object_id, get_file_extension
from backend.app.ingestion import BatchCoordinator, IngestionWorker, PhotoEventsPipeline
from backend.app.models.image import ImageRecord


def _to_dms(value: float) -> Tuple[Tuple[int, int], ...]:
    degrees = int(value)
    minutes = int((value - degrees) * 60)
    seconds = round(((value - degrees) * 60 - minutes) * 60 * 100)
    return ((degrees, 1), (minutes, 1), (seconds, 100))


def make_jpeg(
    capture_time: Optional[datetime] = None,
    gps: Optional[Tuple[float, float]] = None,
) -> bytes:
    """Build a small real JPEG, optionally carrying EXIF capture time and GPS."""
    exif_dict = {"0th": {}, "Exif": {}, "GPS": {}, "1st": {}}
    if capture_time:
        exif_dict["Exif"][piexif.ExifIFD.DateTimeOriginal] = capture_time.strftime(
            "%Y:%m:%d %H:%M:%S"
        ).encode("ascii")
    if gps:
        lat, lon = gps
        exif_dict["GPS"][piexif.GPSIFD.GPSLatitudeRef] = b"N" if lat >= 0 else b"S"
        exif_dict["GPS"][piexif.GPSIFD.GPSLatitude] = _to_dms(abs(lat))
        exif_dict["GPS"][piexif.GPSIFD.GPSLongitudeRef] = b"E" if lon >= 0 else b"W"
        exif_dict["GPS"][piexif.GPSIFD.GPSLongitude] = _to_dms(abs(lon))

    buffer = io.BytesIO()
    image = Image.new("RGB", (32, 32), color="red")
    if capture_time or gps:
        image.save(buffer, "JPEG", exif=piexif.dump(exif_dict))
    else:
        image.save(buffer, "JPEG")
    return buffer.getvalue()


class FakeBlobStore:
    """In-memory blob store with configurable failures and latency."""

    def __init__(self):
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.namespaces: List[str] = []
        self.fail_when: Callable[[bytes], bool] = lambda content: False
        self.delay_seconds = 0.0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def namespace_for(self, owner: str) -> str:
        return f"ns-{owner}"

    def ensure_namespace_exists(self, namespace: str) -> None:
        with self._lock:
            if namespace not in self.namespaces:
                self.namespaces.append(namespace)

    def put(self, namespace, content, content_type=None, image_format=None) -> str:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay_seconds:
                time.sleep(self.delay_seconds)
            if self.fail_when(content):
                raise StorageError()
            object_id = generate_object_id(get_file_extension(image_format, content_type))
            with self._lock:
                self.objects[(namespace, object_id)] = content
            return object_id
        finally:
            with self._lock:
                self.active -= 1


class FakeRecordStore:
    """In-memory record store with configurable insert failures."""

    def __init__(self):
        self.records: Dict[str, ImageRecord] = {}
        self.fail_when: Callable[[ImageRecord], bool] = lambda record: False
        self._lock = threading.Lock()

    def insert_image_record(self, record: ImageRecord) -> None:
        if self.fail_when(record):
            raise PersistenceError()
        with self._lock:
            self.records[record.id] = record

    def lookup_user(self, email: str) -> Optional[str]:
        return None

    def insert_user(self, user) -> None:
        raise NotImplementedError


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def record_store():
    return FakeRecordStore()


@pytest.fixture
def worker(blob_store, record_store):
    return IngestionWorker(blob_store, record_store, max_file_size=1024 * 1024)


@pytest.fixture
def coordinator(worker):
    return BatchCoordinator(worker, concurrency=4)


@pytest.fixture
def pipeline(coordinator):
    return PhotoEventsPipeline(coordinator)


@pytest.fixture
def jpeg():
    """Factory fixture building JPEG bytes with optional EXIF."""
    return make_jpeg

import pytest
from datetime import datetime

from sqlalchemy.pool import StaticPool

from backend.app.core.database import (
    RecordStore,
    create_database_engine,
    create_db_and_tables,
    is_in_memory_sqlite,
)
from backend.app.core.errors import DuplicateUserError, PersistenceError
from backend.app.models.image import ImageRecord
from backend.app.models.user import User


@pytest.fixture
def store():
    """Create an in-memory test database."""
    engine = create_database_engine("sqlite://")
    create_db_and_tables(engine)
    yield RecordStore(engine)
    engine.dispose()


class TestImageRecords:
    def test_insert_and_read_back(self, store):
        record = ImageRecord(
            id="abc123.jpg",
            owner="alice@example.com",
            capture_time=datetime(2025, 6, 10, 14, 30, 0),
            latitude=37.7749,
            longitude=-122.4194,
            content_type="image/jpeg",
            size=1024,
        )

        store.insert_image_record(record)
        saved = store.get_image_record("abc123.jpg")

        assert saved.owner == "alice@example.com"
        assert saved.capture_time == datetime(2025, 6, 10, 14, 30, 0)
        assert saved.latitude == pytest.approx(37.7749)
        assert saved.size == 1024
        # Still readable after the session closed
        assert record.id == "abc123.jpg"

    def test_record_without_metadata(self, store):
        store.insert_image_record(ImageRecord(id="plain.png", owner="alice@example.com"))

        saved = store.get_image_record("plain.png")

        assert saved.capture_time is None
        assert saved.latitude is None

    def test_duplicate_id_raises_persistence_error(self, store):
        store.insert_image_record(ImageRecord(id="dup.jpg", owner="alice@example.com"))

        with pytest.raises(PersistenceError):
            store.insert_image_record(ImageRecord(id="dup.jpg", owner="bob@example.com"))

    def test_unknown_record(self, store):
        assert store.get_image_record("missing.jpg") is None

    def test_uploaded_at_is_timezone_aware(self, store):
        record = ImageRecord(id="fresh.jpg", owner="alice@example.com")

        assert record.uploaded_at.tzinfo is not None
        store.insert_image_record(record)
        assert store.get_image_record("fresh.jpg") is not None

    def test_capture_time_stays_naive(self, store):
        """Camera clock times are stored as recorded, without a zone."""
        store.insert_image_record(
            ImageRecord(id="camera.jpg", owner="alice@example.com", capture_time=datetime(2025, 6, 10, 23, 59, 59))
        )

        saved = store.get_image_record("camera.jpg")

        assert saved.capture_time == datetime(2025, 6, 10, 23, 59, 59)
        assert saved.capture_time.tzinfo is None


class TestUsers:
    def test_lookup_returns_password_hash(self, store):
        store.insert_user(User(email="alice@example.com", username="alice", password_hash="hashed"))

        assert store.lookup_user("alice@example.com") == "hashed"

    def test_lookup_unknown_user(self, store):
        assert store.lookup_user("nobody@example.com") is None

    def test_duplicate_email_raises_duplicate_user_error(self, store):
        store.insert_user(User(email="alice@example.com", username="alice", password_hash="h1"))

        with pytest.raises(DuplicateUserError) as exc_info:
            store.insert_user(User(email="alice@example.com", username="alice2", password_hash="h2"))

        assert exc_info.value.status_code == 409
        assert store.lookup_user("alice@example.com") == "h1"

    def test_created_at_is_timezone_aware(self, store):
        user = User(email="bob@example.com", username="bob", password_hash="hashed")

        store.insert_user(user)

        assert user.created_at.tzinfo is not None
        assert store.lookup_user("bob@example.com") == "hashed"


class TestEngine:
    def test_in_memory_database_shares_one_connection(self):
        engine = create_database_engine("sqlite://")

        assert isinstance(engine.pool, StaticPool)
        engine.dispose()

    def test_file_database_uses_connection_per_checkout(self, tmp_path):
        engine = create_database_engine(f"sqlite:///{tmp_path / 'photos.db'}")
        create_db_and_tables(engine)

        assert not isinstance(engine.pool, StaticPool)
        with engine.connect() as first, engine.connect() as second:
            assert first.connection.dbapi_connection is not second.connection.dbapi_connection
        engine.dispose()

    def test_in_memory_url_detection(self):
        assert is_in_memory_sqlite("sqlite://")
        assert is_in_memory_sqlite("sqlite:///:memory:")
        assert not is_in_memory_sqlite("sqlite:///photos.db")
        assert not is_in_memory_sqlite("postgresql://user:pass@db/photos")

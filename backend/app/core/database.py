import logging
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from .errors import DuplicateUserError, PersistenceError
from ..models.image import ImageRecord
from ..models.user import User

logger = logging.getLogger(__name__)


def is_in_memory_sqlite(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in database_url


@retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type((SQLAlchemyError,)),
    reraise=True,
)
def create_database_engine(database_url: str, echo: bool = False) -> Engine:
    """Create database engine with retry logic."""
    logger.info(f"Attempting to connect to database: {database_url.split('@')[1] if '@' in database_url else 'hidden'}")

    if is_in_memory_sqlite(database_url):
        # An in-memory database only exists on its one connection
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    elif database_url.startswith("sqlite"):
        # Each worker thread checks out its own connection
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,
            pool_recycle=300,  # Recycle connections every 5 minutes
            pool_size=10,
            max_overflow=20,
        )

    # Test the connection
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
        logger.info("Database connection successful!")

    return engine


def create_db_and_tables(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


class RecordStore:
    """SQLModel-backed persistence for image records and users."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def _session(self) -> Session:
        # Inserted objects stay readable after the session closes
        return Session(self.engine, expire_on_commit=False)

    def insert_image_record(self, record: ImageRecord) -> None:
        try:
            with self._session() as session:
                session.add(record)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to insert image record {record.id}: {e}")
            raise PersistenceError() from e

    def lookup_user(self, email: str) -> Optional[str]:
        try:
            with self._session() as session:
                user = session.get(User, email)
        except SQLAlchemyError as e:
            logger.error(f"Failed to look up user: {e}")
            raise PersistenceError() from e
        return user.password_hash if user else None

    def insert_user(self, user: User) -> None:
        try:
            with self._session() as session:
                session.add(user)
                session.commit()
        except IntegrityError as e:
            raise DuplicateUserError() from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to insert user: {e}")
            raise PersistenceError() from e

    def get_image_record(self, record_id: str) -> Optional[ImageRecord]:
        with self._session() as session:
            return session.get(ImageRecord, record_id)

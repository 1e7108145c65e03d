"""Capabilities the ingestion core consumes, injected at construction time."""

from typing import Optional, Protocol

from ..models.image import ImageRecord
from ..models.user import User


class BlobStoreProtocol(Protocol):
    """Owner-scoped binary object storage."""

    def namespace_for(self, owner: str) -> str:
        """Map an owner identity to its storage namespace."""
        ...

    def ensure_namespace_exists(self, namespace: str) -> None:
        """Create the namespace if it is missing. Raises StorageError."""
        ...

    def put(
        self,
        namespace: str,
        content: bytes,
        content_type: Optional[str] = None,
        image_format: Optional[str] = None,
    ) -> str:
        """Store content under a fresh identifier and return it. Raises StorageError."""
        ...


class RecordStoreProtocol(Protocol):
    """Relational persistence for image records and users."""

    def insert_image_record(self, record: ImageRecord) -> None:
        """Persist a new record. Raises PersistenceError."""
        ...

    def lookup_user(self, email: str) -> Optional[str]:
        """Return the stored password hash, or None for unknown users."""
        ...

    def insert_user(self, user: User) -> None:
        """Persist a new user. Raises DuplicateUserError or PersistenceError."""
        ...

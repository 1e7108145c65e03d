from sqlalchemy import Column, DateTime
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone
from typing import Optional


CONTENT_TYPE_MAX_LENGTH = 100


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ImageRecord(SQLModel, table=True):
    """Metadata record for one stored photo.

    ``id`` is the object key of the photo's blob in the owner's namespace,
    so the record and the blob are joined on it.
    """

    __tablename__ = "image"

    id: str = Field(primary_key=True, max_length=64)
    owner: str = Field(index=True, max_length=255)

    # Photo metadata from EXIF; capture_time is the camera's local clock, naive
    capture_time: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=False), index=True, nullable=True)
    )
    latitude: Optional[float] = Field(default=None)
    longitude: Optional[float] = Field(default=None)

    # File information
    content_type: Optional[str] = Field(default=None, max_length=CONTENT_TYPE_MAX_LENGTH)
    size: int = Field(default=0)  # Size in bytes

    uploaded_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False),
    )

from sqlalchemy import Column, DateTime
from sqlmodel import SQLModel, Field
from datetime import datetime
from typing import Optional

from .image import utc_now


class User(SQLModel, table=True):
    """User account as read by the ingestion core.

    Credentials are checked by the auth service; the core only looks up the
    stored hash and inserts new accounts.
    """

    email: str = Field(primary_key=True, max_length=255)
    username: str = Field(max_length=100)
    password_hash: str

    # Blob id of the profile picture in the user's namespace
    profile_pic: Optional[str] = Field(default=None, max_length=64)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

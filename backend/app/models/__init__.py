"""
SQLModel models for the Photo Events service.

Importing this package registers every table with SQLModel metadata.
"""

from .image import ImageRecord
from .user import User

__all__ = [
    "ImageRecord",
    "User",
]

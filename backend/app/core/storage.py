import hashlib
import logging
import mimetypes
import re
from typing import Any, Optional, Set
from uuid import uuid4

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import StorageError

logger = logging.getLogger(__name__)

# Pillow format name -> object key extension
FORMAT_EXTENSIONS = {
    "JPEG": ".jpg",
    "MPO": ".jpg",
    "PNG": ".png",
    "TIFF": ".tiff",
    "WEBP": ".webp",
    "GIF": ".gif",
    "HEIF": ".heic",
}

_INVALID_BUCKET_CHARS = re.compile(r"[^a-z0-9-]+")


def create_s3_client(settings: Settings) -> Any:
    """Create an S3 client for the configured S3-compatible endpoint."""
    session = boto3.Session()
    return session.client(
        "s3",
        endpoint_url=settings.BLOB_ENDPOINT_URL,
        aws_access_key_id=settings.BLOB_ACCESS_KEY or None,
        aws_secret_access_key=settings.BLOB_SECRET_KEY or None,
        region_name=settings.BLOB_REGION,
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


def get_file_extension(image_format: Optional[str], content_type: Optional[str]) -> str:
    """Pick an object key extension from the detected format, then the declared type."""
    if image_format and image_format.upper() in FORMAT_EXTENSIONS:
        return FORMAT_EXTENSIONS[image_format.upper()]
    if content_type:
        guessed = mimetypes.guess_extension(content_type.split(";")[0].strip())
        if guessed:
            return guessed
    return ""


def generate_object_id(extension: str = "") -> str:
    """Generate a unique object key while preserving the extension."""
    return f"{uuid4().hex}{extension}"


class BlobStore:
    """Owner-scoped blob storage on an S3-compatible service.

    Every owner gets a bucket of their own; bucket names are derived from the
    owner identity so they satisfy S3 naming rules.
    """

    def __init__(self, client: Any, prefix: str = "photos", region: Optional[str] = None):
        self.client = client
        self.prefix = prefix
        self.region = region
        self._known_namespaces: Set[str] = set()

    def namespace_for(self, owner: str) -> str:
        readable = _INVALID_BUCKET_CHARS.sub("-", owner.lower()).strip("-")
        digest = hashlib.sha1(owner.encode("utf-8")).hexdigest()[:12]
        # S3 bucket names are limited to 63 characters
        head = f"{self.prefix}-{readable}"[: 63 - len(digest) - 1].rstrip("-")
        return f"{head}-{digest}"

    def ensure_namespace_exists(self, namespace: str) -> None:
        """Create the owner's bucket if it does not exist yet."""
        if namespace in self._known_namespaces:
            return

        try:
            self.client.head_bucket(Bucket=namespace)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code not in ("404", "NoSuchBucket", "NotFound"):
                logger.error(f"Failed to check bucket {namespace}: {e}")
                raise StorageError() from e
            self._create_bucket(namespace)
        except BotoCoreError as e:
            logger.error(f"Blob store unavailable while checking {namespace}: {e}")
            raise StorageError() from e

        self._known_namespaces.add(namespace)

    def _create_bucket(self, namespace: str) -> None:
        kwargs = {"Bucket": namespace}
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}

        try:
            self.client.create_bucket(**kwargs)
            logger.info(f"Created bucket {namespace}")
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            # Another upload of the same owner created it first
            if code in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                return
            logger.error(f"Failed to create bucket {namespace}: {e}")
            raise StorageError() from e
        except BotoCoreError as e:
            logger.error(f"Blob store unavailable while creating {namespace}: {e}")
            raise StorageError() from e

    def put(
        self,
        namespace: str,
        content: bytes,
        content_type: Optional[str] = None,
        image_format: Optional[str] = None,
    ) -> str:
        """
        Store content in the namespace under a fresh object key.

        Returns:
            The generated object key.
        """
        object_id = generate_object_id(get_file_extension(image_format, content_type))

        try:
            self.client.put_object(
                Bucket=namespace,
                Key=object_id,
                Body=content,
                ContentType=content_type or "application/octet-stream",
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error storing file {object_id} in {namespace}: {e}")
            raise StorageError() from e

        logger.debug(f"Stored {len(content)} bytes as {namespace}/{object_id}")
        return object_id

    def close(self) -> None:
        self.client.close()

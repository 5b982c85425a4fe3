"""Blob storage for task images, backed by MinIO."""

from __future__ import annotations

import io
import json
import mimetypes
import uuid
from pathlib import PurePosixPath
from typing import Protocol

import structlog
from minio import Minio

from shared.config import Settings
from shared.errors import StorageError

logger = structlog.get_logger()

IMAGE_PREFIX = "tasks"

# MinIO anonymous read policy for the bucket
_PUBLIC_READ_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Principal": {"AWS": ["*"]},
            "Action": ["s3:GetObject"],
            "Resource": ["arn:aws:s3:::{bucket}/*"],
        }
    ],
}


class BlobStore(Protocol):
    """What the task services need from a blob store."""

    def store(
        self, data: bytes, suggested_name: str, content_type: str | None = None
    ) -> str: ...

    def delete(self, path: str) -> bool: ...

    def url_for(self, path: str) -> str: ...


def build_object_key(suggested_name: str) -> str:
    """``tasks/<uuid>.<ext>``; the client filename only contributes its extension."""
    ext = PurePosixPath(suggested_name or "").suffix.lower().lstrip(".")
    key = f"{IMAGE_PREFIX}/{uuid.uuid4()}"
    return f"{key}.{ext}" if ext else key


class MinioBlobStore:
    """BlobStore implementation over a MinIO bucket with public-read access."""

    def __init__(self, settings: Settings, client: Minio | None = None):
        self.settings = settings
        self.bucket = settings.minio_bucket
        self.minio = client or Minio(
            settings.minio_endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            secure=settings.minio_secure,
        )

    def ensure_bucket(self) -> None:
        """Create the bucket if missing and allow anonymous reads."""
        try:
            if not self.minio.bucket_exists(self.bucket):
                self.minio.make_bucket(self.bucket)
            policy = json.loads(json.dumps(_PUBLIC_READ_POLICY).replace("{bucket}", self.bucket))
            self.minio.set_bucket_policy(self.bucket, json.dumps(policy))
        except Exception as e:
            raise StorageError(f"Could not prepare bucket {self.bucket}: {e}") from e

    def store(self, data: bytes, suggested_name: str, content_type: str | None = None) -> str:
        key = build_object_key(suggested_name)
        content_type = (
            content_type
            or mimetypes.guess_type(suggested_name or "")[0]
            or "application/octet-stream"
        )
        try:
            self.minio.put_object(
                self.bucket,
                key,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except Exception as e:
            logger.error("image_store_failed", key=key, error=str(e))
            raise StorageError(f"Could not store image: {e}") from e

        logger.info("image_stored", key=key, size=len(data))
        return key

    def delete(self, path: str) -> bool:
        try:
            self.minio.remove_object(self.bucket, path)
        except Exception as e:
            raise StorageError(f"Could not delete image {path}: {e}") from e
        logger.info("image_deleted", key=path)
        return True

    def url_for(self, path: str) -> str:
        return f"{self.settings.minio_public_url.rstrip('/')}/{path}"

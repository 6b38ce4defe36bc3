"""
Storage abstraction for S3-compatible object stores and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol
import json
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from disaster_backend.errors import ConfigurationError, StorageError

logger = logging.getLogger(__name__)

BUCKET_MISSING_CODES = {"404", "NoSuchBucket", "NotFound"}
BUCKET_EXISTS_CODES = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def ensure_bucket(self) -> None:
        ...

    def put_object(self, key: str, data: bytes, content_type: str) -> None:
        ...

    def delete_object(self, key: str) -> None:
        ...

    def get_bytes(self, key: str) -> bytes:
        ...

    def public_url(self, key: str) -> str:
        ...


def public_read_policy(bucket: str) -> str:
    return json.dumps(
        {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": "*",
                    "Action": ["s3:GetObject"],
                    "Resource": [f"arn:aws:s3:::{bucket}/*"],
                }
            ],
        }
    )


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    bucket: str = "images"
    base_url: str = "https://example.test/storage"
    stored_objects: dict = None
    content_types: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}
        if self.content_types is None:
            self.content_types = {}
        self.bucket_ready = False

    def ensure_bucket(self) -> None:
        self.bucket_ready = True

    def put_object(self, key: str, data: bytes, content_type: str) -> None:
        self.stored_objects[key] = bytes(data)
        self.content_types[key] = content_type

    def delete_object(self, key: str) -> None:
        self.stored_objects.pop(key, None)
        self.content_types.pop(key, None)

    def get_bytes(self, key: str) -> bytes:
        stored = self.stored_objects.get(key)
        if stored is None:
            raise StorageError(f"Object not found: {key}")
        return stored

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{self.bucket}/{key}"


@dataclass
class S3StorageClient:
    """
    boto3 client for an S3-compatible store (MinIO, AWS S3, ...).

    Writes go through ``endpoint``; links returned to API callers are built
    from ``public_endpoint`` with path-style addressing.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_endpoint: Optional[str] = None
    client: Optional[object] = None

    def __post_init__(self):
        if not self.bucket:
            raise ConfigurationError("A bucket name is required for S3 storage")
        if self.client is not None:
            self._client = self.client
            return
        # Path-style addressing works with MinIO and other self-hosted stores.
        # Long read timeout so large video uploads are not cut off.
        config = Config(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
            read_timeout=300,
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def _wrap(self, exc: Exception, operation: str, key: str) -> StorageError:
        logger.debug("S3 %s failed for key=%s: %s", operation, key, exc)
        if isinstance(exc, ClientError):
            code = exc.response.get("Error", {}).get("Code", "Unknown")
        else:
            code = type(exc).__name__
        return StorageError(f"S3 {operation} failed for key={key}: {code}")

    def ensure_bucket(self) -> None:
        """Create the bucket with a public-read policy unless it already exists."""
        try:
            self._client.head_bucket(Bucket=self.bucket)
            logger.info("Bucket %s already exists", self.bucket)
            return
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code not in BUCKET_MISSING_CODES:
                raise ConfigurationError(
                    f"Cannot access bucket {self.bucket}: {code or exc}"
                ) from exc
        except BotoCoreError as exc:
            raise ConfigurationError(
                f"Cannot reach object storage for bucket {self.bucket}: {exc}"
            ) from exc

        create_kwargs = {"Bucket": self.bucket}
        if self.region and self.region != "us-east-1":
            create_kwargs["CreateBucketConfiguration"] = {
                "LocationConstraint": self.region
            }
        try:
            self._client.create_bucket(**create_kwargs)
            logger.info("Bucket %s created", self.bucket)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code not in BUCKET_EXISTS_CODES:
                raise self._wrap(exc, "create_bucket", self.bucket) from exc
            logger.info("Bucket %s was created concurrently", self.bucket)

        try:
            self._client.put_bucket_policy(
                Bucket=self.bucket, Policy=public_read_policy(self.bucket)
            )
        except (BotoCoreError, ClientError) as exc:
            raise self._wrap(exc, "put_bucket_policy", self.bucket) from exc

    def put_object(self, key: str, data: bytes, content_type: str) -> None:
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise self._wrap(exc, "put", key) from exc

    def delete_object(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise self._wrap(exc, "delete", key) from exc

    def get_bytes(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise self._wrap(exc, "get", key) from exc
        return response["Body"].read()

    def public_url(self, key: str) -> str:
        base = (self.public_endpoint or self.endpoint or "").rstrip("/")
        return f"{base}/{self.bucket}/{key}"

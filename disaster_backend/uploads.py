"""
Upload transaction: persist metadata, store the object, backfill the key.

The object key is derived from the database id, so the row has to exist
before anything is written to storage. A failed write (or a failed key
backfill) is rolled back by deleting the object and the pending row; if
that rollback fails the caller gets a CompensationError instead of the
original error so the orphan row is not lost track of.
"""

from __future__ import annotations

import logging
from typing import Optional

from disaster_backend.db import DbClient, DisasterType, UploadDraft, UploadRecord
from disaster_backend.errors import (
    CompensationError,
    PayloadTooLargeError,
    StorageWriteError,
    UploadValidationError,
)
from disaster_backend.storage import StorageClient

logger = logging.getLogger(__name__)

KSPLAT_EXTENSION = ".ksplat"
BINARY_CONTENT_TYPE = "application/octet-stream"
DEFAULT_TRANSFER_ENCODING = "7bit"


def file_extension(filename: Optional[str]) -> str:
    """Return ``.ext`` for the last dot-delimited segment, or ``""``."""
    name = (filename or "").rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    ext = name.rsplit(".", 1)[1].lower()
    return f".{ext}" if ext else ""


def validate_upload(
    filename: Optional[str],
    content_type: Optional[str],
    size: int,
    max_bytes: int,
) -> str:
    """
    Check an incoming file before anything is persisted.

    Returns the content type to store the object with. Images and videos
    keep their declared type; ``.ksplat`` splats are opaque binaries and
    fall back to ``application/octet-stream``.
    """
    if size <= 0:
        raise UploadValidationError("Uploaded file is empty")
    if size > max_bytes:
        raise PayloadTooLargeError(
            f"File of {size} bytes exceeds the {max_bytes} byte limit"
        )

    declared = (content_type or "").split(";", 1)[0].strip().lower()
    if declared.startswith("image/") or declared.startswith("video/"):
        return declared
    if file_extension(filename) == KSPLAT_EXTENSION:
        if declared.startswith("application/"):
            return declared
        return BINARY_CONTENT_TYPE
    raise UploadValidationError(
        f"Unsupported file type {declared or 'unknown'!r}; "
        "expected an image, a video or a .ksplat file"
    )


class UploadCoordinator:
    """Runs the insert, write, backfill sequence for a single upload."""

    def __init__(self, db: DbClient, storage: StorageClient, key_prefix: str = "uploads"):
        self.db = db
        self.storage = storage
        self.key_prefix = key_prefix.strip("/")

    def build_key(self, upload_id: str, extension: str) -> str:
        if self.key_prefix:
            return f"{self.key_prefix}/{upload_id}{extension}"
        return f"{upload_id}{extension}"

    def store(
        self,
        data: bytes,
        content_type: str,
        original_filename: Optional[str],
        disaster_type: DisasterType,
        *,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        address: Optional[str] = None,
        description: Optional[str] = None,
        encoding: str = DEFAULT_TRANSFER_ENCODING,
    ) -> UploadRecord:
        extension = file_extension(original_filename)
        draft = UploadDraft(
            disaster_type=disaster_type,
            size=len(data),
            mimetype=content_type,
            latitude=latitude,
            longitude=longitude,
            address=address,
            description=description,
            metadata={
                "extension": extension,
                "encoding": encoding or DEFAULT_TRANSFER_ENCODING,
                "original_name": original_filename,
            },
        )
        # A failed insert propagates as-is: no id means no key and no write.
        pending = self.db.create_upload(draft)
        key = self.build_key(pending.id, extension)

        try:
            self.storage.put_object(key, data, content_type)
        except Exception as exc:
            logger.error("[%s] Object write to %s failed: %s", pending.id, key, exc)
            self._roll_back(pending.id, key, exc)
            raise StorageWriteError(
                f"Failed to store upload: {exc}", upload_id=pending.id, key=key
            ) from exc

        try:
            record = self.db.set_upload_key(pending.id, key)
        except Exception as exc:
            logger.exception("[%s] Could not record key %s", pending.id, key)
            self._roll_back(pending.id, key, exc)
            raise

        logger.info(
            "[%s] Stored %s (%d bytes, %s)", record.id, key, record.size, content_type
        )
        return record

    def _roll_back(self, upload_id: str, key: str, cause: BaseException) -> None:
        """Delete the object and the pending row for a failed upload."""
        try:
            self.storage.delete_object(key)
        except Exception:
            # An object without a row is never served.
            logger.exception("[%s] Could not delete object %s during rollback", upload_id, key)

        try:
            self.db.delete_upload(upload_id)
        except Exception as exc:
            logger.critical(
                "[%s] Rollback failed, pending upload row left behind (key=%s): %s",
                upload_id,
                key,
                exc,
            )
            raise CompensationError(
                f"Upload {upload_id} failed and could not be rolled back",
                upload_id=upload_id,
                key=key,
                original=cause,
            ) from exc
        logger.info("[%s] Rolled back pending upload", upload_id)

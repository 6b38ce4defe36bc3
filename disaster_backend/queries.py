"""
Read-side operations: upload listing, statistics and markers.
"""

from __future__ import annotations

import math
from typing import Optional

from disaster_backend.db import DbClient, DisasterType, MarkerRecord, UploadRecord
from disaster_backend.errors import NotFoundError
from disaster_backend.storage import StorageClient


def total_pages(total: int, limit: int) -> int:
    if limit <= 0:
        raise ValueError("limit must be positive")
    return math.ceil(total / limit)


class UploadQueryService:
    def __init__(self, db: DbClient, storage: StorageClient):
        self.db = db
        self.storage = storage

    def with_url(self, record: UploadRecord) -> dict:
        """Serialize a completed upload and attach its public URL."""
        payload = record.as_dict()
        payload["url"] = self.storage.public_url(record.key)
        return payload

    def list_uploads(
        self,
        disaster_type: Optional[DisasterType] = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be at least 1")
        items, total = self.db.list_uploads(
            disaster_type, offset=(page - 1) * limit, limit=limit
        )
        return {
            "items": [self.with_url(item) for item in items],
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": total_pages(total, limit),
        }

    def get_upload(self, upload_id: str) -> UploadRecord:
        record = self.db.get_upload(upload_id)
        if record is None:
            raise NotFoundError(f"Upload {upload_id} not found")
        return record

    def get_statistics(self) -> dict:
        return {
            "totalUploads": self.db.count_uploads(),
            "monthlyStats": [
                {"year": year, "month": month, "count": count}
                for year, month, count in self.db.monthly_upload_counts()
            ],
            "disasterTypeStats": [
                {"type": disaster_type.value, "count": count}
                for disaster_type, count in self.db.upload_counts_by_type()
            ],
        }


class MarkerService:
    """Map markers; every marker points at one completed upload."""

    def __init__(self, db: DbClient):
        self.db = db

    def _require_upload(self, upload_id: str) -> None:
        if self.db.get_upload(upload_id) is None:
            raise NotFoundError(f"Upload {upload_id} not found")

    def create_marker(
        self, upload_id: str, latitude: float, longitude: float, address: str
    ) -> MarkerRecord:
        self._require_upload(upload_id)
        return self.db.create_marker(upload_id, latitude, longitude, address)

    def list_markers(self) -> list[MarkerRecord]:
        return self.db.list_markers()

    def list_markers_for_upload(self, upload_id: str) -> list[MarkerRecord]:
        self._require_upload(upload_id)
        return self.db.list_markers(upload_id=upload_id)

    def get_marker(self, marker_id: str) -> MarkerRecord:
        marker = self.db.get_marker(marker_id)
        if marker is None:
            raise NotFoundError(f"Marker {marker_id} not found")
        return marker

"""
Database abstraction for Postgres and an in-memory test implementation.

Uploads are written in two steps: ``create_upload`` inserts a pending row
(no storage key yet) to mint the id, and ``set_upload_key`` completes it.
Read methods only ever return completed uploads.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    extract,
    func,
    select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from disaster_backend.errors import NotFoundError


class DisasterType(str, enum.Enum):
    FLOOD = "FLOOD"
    EARTHQUAKE = "EARTHQUAKE"
    TYPHOON = "TYPHOON"
    FIRE = "FIRE"
    LANDSLIDE = "LANDSLIDE"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DbClient(Protocol):
    """Interface for database access."""

    def create_upload(self, draft: "UploadDraft") -> "UploadRecord":
        ...

    def set_upload_key(self, upload_id: str, key: str) -> "UploadRecord":
        ...

    def delete_upload(self, upload_id: str) -> None:
        ...

    def get_upload(self, upload_id: str) -> Optional["UploadRecord"]:
        ...

    def list_uploads(
        self,
        disaster_type: Optional[DisasterType] = None,
        *,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list["UploadRecord"], int]:
        ...

    def count_uploads(self) -> int:
        ...

    def monthly_upload_counts(self) -> list[tuple[int, int, int]]:
        ...

    def upload_counts_by_type(self) -> list[tuple[DisasterType, int]]:
        ...

    def create_marker(
        self, upload_id: str, latitude: float, longitude: float, address: str
    ) -> "MarkerRecord":
        ...

    def get_marker(self, marker_id: str) -> Optional["MarkerRecord"]:
        ...

    def list_markers(self, upload_id: Optional[str] = None) -> list["MarkerRecord"]:
        ...


@dataclass
class UploadDraft:
    """Fields known before the object is stored."""

    disaster_type: DisasterType
    size: int
    mimetype: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    description: Optional[str] = None
    metadata: dict = field(default_factory=dict)


@dataclass
class UploadRecord:
    id: str
    disaster_type: DisasterType
    size: int
    mimetype: str
    key: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    description: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def is_complete(self) -> bool:
        return bool(self.key)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "type": self.disaster_type.value,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address,
            "description": self.description,
            "size": self.size,
            "mimetype": self.mimetype,
            "metadata": dict(self.metadata),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class MarkerRecord:
    id: str
    upload_id: str
    latitude: float
    longitude: float
    address: str
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "uploadId": self.upload_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.uploads: Dict[str, UploadRecord] = {}
        self.markers: Dict[str, MarkerRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.uploads.clear()
        self.markers.clear()

    def create_upload(self, draft: UploadDraft) -> UploadRecord:
        record = UploadRecord(
            id=str(uuid.uuid4()),
            disaster_type=draft.disaster_type,
            size=draft.size,
            mimetype=draft.mimetype,
            latitude=draft.latitude,
            longitude=draft.longitude,
            address=draft.address,
            description=draft.description,
            metadata=dict(draft.metadata),
        )
        self.uploads[record.id] = record
        return record

    def set_upload_key(self, upload_id: str, key: str) -> UploadRecord:
        record = self.uploads.get(upload_id)
        if record is None:
            raise NotFoundError(f"Upload {upload_id} not found")
        record.key = key
        record.updated_at = _utcnow()
        return record

    def delete_upload(self, upload_id: str) -> None:
        self.uploads.pop(upload_id, None)

    def _complete(self) -> list[UploadRecord]:
        return [u for u in self.uploads.values() if u.is_complete]

    def get_upload(self, upload_id: str) -> Optional[UploadRecord]:
        record = self.uploads.get(upload_id)
        if record is None or not record.is_complete:
            return None
        return record

    def list_uploads(
        self,
        disaster_type: Optional[DisasterType] = None,
        *,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[UploadRecord], int]:
        items = [
            u
            for u in self._complete()
            if disaster_type is None or u.disaster_type == disaster_type
        ]
        items.sort(key=lambda u: (u.created_at, u.id), reverse=True)
        return items[offset : offset + limit], len(items)

    def count_uploads(self) -> int:
        return len(self._complete())

    def monthly_upload_counts(self) -> list[tuple[int, int, int]]:
        counts: Dict[tuple[int, int], int] = {}
        for upload in self._complete():
            bucket = (upload.created_at.year, upload.created_at.month)
            counts[bucket] = counts.get(bucket, 0) + 1
        return [
            (year, month, count)
            for (year, month), count in sorted(counts.items(), reverse=True)
        ]

    def upload_counts_by_type(self) -> list[tuple[DisasterType, int]]:
        counts: Dict[DisasterType, int] = {}
        for upload in self._complete():
            counts[upload.disaster_type] = counts.get(upload.disaster_type, 0) + 1
        return sorted(counts.items(), key=lambda item: (-item[1], item[0].value))

    def create_marker(
        self, upload_id: str, latitude: float, longitude: float, address: str
    ) -> MarkerRecord:
        marker = MarkerRecord(
            id=str(uuid.uuid4()),
            upload_id=upload_id,
            latitude=latitude,
            longitude=longitude,
            address=address,
        )
        self.markers[marker.id] = marker
        return marker

    def get_marker(self, marker_id: str) -> Optional[MarkerRecord]:
        return self.markers.get(marker_id)

    def list_markers(self, upload_id: Optional[str] = None) -> list[MarkerRecord]:
        markers = [
            m
            for m in self.markers.values()
            if upload_id is None or m.upload_id == upload_id
        ]
        markers.sort(key=lambda m: (m.created_at, m.id), reverse=True)
        return markers


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_upload_record(self, row: "UploadRow") -> UploadRecord:
        return UploadRecord(
            id=row.id,
            key=row.key,
            disaster_type=DisasterType(row.disaster_type),
            size=row.size,
            mimetype=row.mimetype,
            latitude=row.latitude,
            longitude=row.longitude,
            address=row.address,
            description=row.description,
            metadata=dict(row.extra or {}),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_marker_record(self, row: "MarkerRow") -> MarkerRecord:
        return MarkerRecord(
            id=row.id,
            upload_id=row.upload_id,
            latitude=row.latitude,
            longitude=row.longitude,
            address=row.address,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def create_upload(self, draft: UploadDraft) -> UploadRecord:
        now = _utcnow()
        with self.Session() as session:
            row = UploadRow(
                id=str(uuid.uuid4()),
                key=None,
                disaster_type=draft.disaster_type.value,
                size=draft.size,
                mimetype=draft.mimetype,
                latitude=draft.latitude,
                longitude=draft.longitude,
                address=draft.address,
                description=draft.description,
                extra=dict(draft.metadata),
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            return self._to_upload_record(row)

    def set_upload_key(self, upload_id: str, key: str) -> UploadRecord:
        with self.Session() as session:
            row = session.get(UploadRow, upload_id)
            if row is None:
                raise NotFoundError(f"Upload {upload_id} not found")
            row.key = key
            row.updated_at = _utcnow()
            session.commit()
            return self._to_upload_record(row)

    def delete_upload(self, upload_id: str) -> None:
        with self.Session() as session:
            row = session.get(UploadRow, upload_id)
            if row is not None:
                session.delete(row)
                session.commit()

    def get_upload(self, upload_id: str) -> Optional[UploadRecord]:
        with self.Session() as session:
            row = session.get(UploadRow, upload_id)
            if row is None or not row.key:
                return None
            return self._to_upload_record(row)

    def list_uploads(
        self,
        disaster_type: Optional[DisasterType] = None,
        *,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[UploadRecord], int]:
        query = select(UploadRow).where(UploadRow.key.is_not(None))
        if disaster_type is not None:
            query = query.where(UploadRow.disaster_type == disaster_type.value)
        with self.Session() as session:
            total = session.scalar(
                select(func.count()).select_from(query.subquery())
            )
            rows = session.scalars(
                query.order_by(UploadRow.created_at.desc(), UploadRow.id.desc())
                .offset(offset)
                .limit(limit)
            ).all()
            return [self._to_upload_record(row) for row in rows], total or 0

    def count_uploads(self) -> int:
        with self.Session() as session:
            total = session.scalar(
                select(func.count(UploadRow.id)).where(UploadRow.key.is_not(None))
            )
            return total or 0

    def monthly_upload_counts(self) -> list[tuple[int, int, int]]:
        year = extract("year", UploadRow.created_at)
        month = extract("month", UploadRow.created_at)
        query = (
            select(year.label("year"), month.label("month"), func.count(UploadRow.id))
            .where(UploadRow.key.is_not(None))
            .group_by(year, month)
            .order_by(year.desc(), month.desc())
        )
        with self.Session() as session:
            return [
                (int(y), int(m), int(count))
                for y, m, count in session.execute(query).all()
            ]

    def upload_counts_by_type(self) -> list[tuple[DisasterType, int]]:
        count = func.count(UploadRow.id)
        query = (
            select(UploadRow.disaster_type, count)
            .where(UploadRow.key.is_not(None))
            .group_by(UploadRow.disaster_type)
            .order_by(count.desc(), UploadRow.disaster_type)
        )
        with self.Session() as session:
            return [
                (DisasterType(value), int(total))
                for value, total in session.execute(query).all()
            ]

    def create_marker(
        self, upload_id: str, latitude: float, longitude: float, address: str
    ) -> MarkerRecord:
        now = _utcnow()
        with self.Session() as session:
            row = MarkerRow(
                id=str(uuid.uuid4()),
                upload_id=upload_id,
                latitude=latitude,
                longitude=longitude,
                address=address,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            return self._to_marker_record(row)

    def get_marker(self, marker_id: str) -> Optional[MarkerRecord]:
        with self.Session() as session:
            row = session.get(MarkerRow, marker_id)
            if not row:
                return None
            return self._to_marker_record(row)

    def list_markers(self, upload_id: Optional[str] = None) -> list[MarkerRecord]:
        query = select(MarkerRow).order_by(
            MarkerRow.created_at.desc(), MarkerRow.id.desc()
        )
        if upload_id is not None:
            query = query.where(MarkerRow.upload_id == upload_id)
        with self.Session() as session:
            return [self._to_marker_record(row) for row in session.scalars(query)]


Base = declarative_base()


class UploadRow(Base):
    __tablename__ = "uploads"

    id = Column(String(36), primary_key=True)
    # NULL while the object write is pending.
    key = Column(String, unique=True, nullable=True)
    disaster_type = Column("type", String(16), nullable=False, index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    address = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    size = Column(Integer, nullable=False)
    mimetype = Column(String, nullable=False)
    extra = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class MarkerRow(Base):
    __tablename__ = "marker"

    id = Column(String(36), primary_key=True)
    upload_id = Column(
        String(36), ForeignKey("uploads.id"), nullable=False, index=True
    )
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

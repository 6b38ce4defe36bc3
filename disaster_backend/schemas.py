"""
Pydantic schemas for the upload API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from disaster_backend.db import DisasterType


class UploadResponse(BaseModel):
    id: str
    key: str
    type: DisasterType
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    description: Optional[str] = None
    size: int
    mimetype: str
    metadata: dict = Field(default_factory=dict)
    createdAt: datetime
    updatedAt: datetime
    url: str


class UploadListResponse(BaseModel):
    items: list[UploadResponse]
    total: int
    page: int
    limit: int
    totalPages: int


class MonthlyUploadStats(BaseModel):
    year: int
    month: int
    count: int


class DisasterTypeStats(BaseModel):
    type: DisasterType
    count: int


class UploadStatisticsResponse(BaseModel):
    totalUploads: int
    monthlyStats: list[MonthlyUploadStats]
    disasterTypeStats: list[DisasterTypeStats]


class MarkerRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str = Field(..., min_length=1, max_length=512)
    uploadId: str = Field(..., max_length=64)


class MarkerResponse(BaseModel):
    id: str
    uploadId: str
    latitude: float
    longitude: float
    address: str
    createdAt: datetime
    updatedAt: datetime


class HealthResponse(BaseModel):
    status: Literal["ok"]

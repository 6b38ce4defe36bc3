"""
HTTP routes for the upload API.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from starlette.concurrency import run_in_threadpool

from disaster_backend.config import Settings, get_settings
from disaster_backend.db import DisasterType
from disaster_backend.dependencies import (
    get_marker_service,
    get_query_service,
    get_upload_coordinator,
)
from disaster_backend.queries import MarkerService, UploadQueryService
from disaster_backend.schemas import (
    HealthResponse,
    MarkerRequest,
    MarkerResponse,
    UploadListResponse,
    UploadResponse,
    UploadStatisticsResponse,
)
from disaster_backend.uploads import (
    DEFAULT_TRANSFER_ENCODING,
    UploadCoordinator,
    validate_upload,
)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@router.post(
    "/upload", response_model=UploadResponse, status_code=201, tags=["upload"]
)
async def upload_file(
    file: UploadFile = File(...),
    disaster_type: DisasterType = Form(..., alias="type"),
    address: Optional[str] = Form(None),
    latitude: Optional[float] = Form(None, ge=-90, le=90),
    longitude: Optional[float] = Form(None, ge=-180, le=180),
    description: Optional[str] = Form(None),
    coordinator: UploadCoordinator = Depends(get_upload_coordinator),
    queries: UploadQueryService = Depends(get_query_service),
    settings: Settings = Depends(get_settings),
):
    """
    Store a disaster image, video or .ksplat file together with its metadata.
    """
    # Reject oversized files before reading them into memory.
    if file.size is not None:
        validate_upload(file.filename, file.content_type, file.size, settings.max_upload_bytes)
    data = await file.read()
    content_type = validate_upload(
        file.filename, file.content_type, len(data), settings.max_upload_bytes
    )
    encoding = file.headers.get("content-transfer-encoding", DEFAULT_TRANSFER_ENCODING)

    record = await run_in_threadpool(
        coordinator.store,
        data,
        content_type,
        file.filename,
        disaster_type,
        latitude=latitude,
        longitude=longitude,
        address=address,
        description=description,
        encoding=encoding,
    )
    return queries.with_url(record)


@router.get("/upload/list", response_model=UploadListResponse, tags=["upload"])
def list_uploads(
    disaster_type: Optional[DisasterType] = Query(None, alias="type"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    queries: UploadQueryService = Depends(get_query_service),
):
    return queries.list_uploads(disaster_type, page=page, limit=limit)


@router.get(
    "/upload/statistics", response_model=UploadStatisticsResponse, tags=["upload"]
)
def upload_statistics(queries: UploadQueryService = Depends(get_query_service)):
    return queries.get_statistics()


@router.get("/upload/{upload_id}", response_model=UploadResponse, tags=["upload"])
def get_upload(
    upload_id: uuid.UUID, queries: UploadQueryService = Depends(get_query_service)
):
    return queries.with_url(queries.get_upload(str(upload_id)))


@router.get(
    "/upload/{upload_id}/markers",
    response_model=list[MarkerResponse],
    tags=["marker"],
)
def list_upload_markers(
    upload_id: uuid.UUID, markers: MarkerService = Depends(get_marker_service)
):
    return [m.as_dict() for m in markers.list_markers_for_upload(str(upload_id))]


@router.post("/marker", response_model=MarkerResponse, status_code=201, tags=["marker"])
def create_marker(
    payload: MarkerRequest, markers: MarkerService = Depends(get_marker_service)
):
    marker = markers.create_marker(
        payload.uploadId, payload.latitude, payload.longitude, payload.address
    )
    return marker.as_dict()


@router.get("/marker", response_model=list[MarkerResponse], tags=["marker"])
def list_markers(markers: MarkerService = Depends(get_marker_service)):
    return [m.as_dict() for m in markers.list_markers()]


@router.get("/marker/{marker_id}", response_model=MarkerResponse, tags=["marker"])
def get_marker(
    marker_id: uuid.UUID, markers: MarkerService = Depends(get_marker_service)
):
    return markers.get_marker(str(marker_id)).as_dict()

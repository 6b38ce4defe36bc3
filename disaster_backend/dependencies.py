"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from fastapi import Depends

from disaster_backend.config import get_settings
from disaster_backend.db import DbClient, InMemoryDbClient, PostgresDbClient
from disaster_backend.queries import MarkerService, UploadQueryService
from disaster_backend.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from disaster_backend.uploads import UploadCoordinator

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so the engine and its pool are shared.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    """
    Return a singleton storage client.

    Outside in-memory mode every S3 setting is required; a missing one
    raises ConfigurationError.
    """
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _storage_client = InMemoryStorageClient(
            bucket=settings.aws_s3_bucket,
            base_url=settings.public_endpoint or InMemoryStorageClient.base_url,
        )
    else:
        settings.require_storage()
        _storage_client = S3StorageClient(
            bucket=settings.aws_s3_bucket,
            region=settings.aws_region,
            endpoint=settings.aws_endpoint,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            public_endpoint=settings.public_endpoint,
        )
    return _storage_client


def get_upload_coordinator(
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
) -> UploadCoordinator:
    return UploadCoordinator(db, storage, key_prefix=get_settings().upload_key_prefix)


def get_query_service(
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
) -> UploadQueryService:
    return UploadQueryService(db, storage)


def get_marker_service(db: DbClient = Depends(get_db_client)) -> MarkerService:
    return MarkerService(db)

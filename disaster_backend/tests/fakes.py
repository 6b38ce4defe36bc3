"""Fault-injecting doubles built on the in-memory backends."""

from disaster_backend.db import InMemoryDbClient
from disaster_backend.errors import StorageError
from disaster_backend.storage import InMemoryStorageClient


class FailingStorageClient(InMemoryStorageClient):
    """Rejects every write; optionally rejects deletes too."""

    def __init__(self, fail_delete: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.fail_delete = fail_delete
        self.put_calls = []
        self.delete_calls = []

    def put_object(self, key, data, content_type):
        self.put_calls.append(key)
        raise StorageError(f"S3 put failed for key={key}: ServiceUnavailable")

    def delete_object(self, key):
        self.delete_calls.append(key)
        if self.fail_delete:
            raise StorageError(f"S3 delete failed for key={key}: ServiceUnavailable")
        super().delete_object(key)


class RecordingStorageClient(InMemoryStorageClient):
    def __post_init__(self):
        super().__post_init__()
        self.put_calls = []

    def put_object(self, key, data, content_type):
        self.put_calls.append(key)
        super().put_object(key, data, content_type)


class BrokenDeleteDbClient(InMemoryDbClient):
    def delete_upload(self, upload_id):
        raise RuntimeError("connection reset during delete")


class BrokenInsertDbClient(InMemoryDbClient):
    def create_upload(self, draft):
        raise RuntimeError("database unavailable")


class BrokenKeyUpdateDbClient(InMemoryDbClient):
    def set_upload_key(self, upload_id, key):
        raise RuntimeError("could not serialize access")


class DroppedConnectionStorageClient(InMemoryStorageClient):
    """Raises a bare socket error instead of a StorageError on write and delete."""

    def put_object(self, key, data, content_type):
        raise ConnectionResetError(104, "Connection reset by peer")

    def delete_object(self, key):
        raise ConnectionResetError(104, "Connection reset by peer")

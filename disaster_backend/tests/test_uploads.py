import unittest

from disaster_backend.db import DisasterType, InMemoryDbClient
from disaster_backend.errors import (
    CompensationError,
    PayloadTooLargeError,
    StorageWriteError,
    UploadValidationError,
)
from disaster_backend.storage import InMemoryStorageClient
from disaster_backend.tests.fakes import (
    BrokenDeleteDbClient,
    BrokenInsertDbClient,
    BrokenKeyUpdateDbClient,
    DroppedConnectionStorageClient,
    FailingStorageClient,
    RecordingStorageClient,
)
from disaster_backend.uploads import UploadCoordinator, file_extension, validate_upload

JPEG_BYTES = b"\xff\xd8\xff\xe0JFIF\x00\x01"


class FileExtensionTests(unittest.TestCase):
    def test_last_segment_is_used(self):
        self.assertEqual(file_extension("scene.final.KSPLAT"), ".ksplat")
        self.assertEqual(file_extension("photo.jpeg"), ".jpeg")

    def test_no_extension(self):
        self.assertEqual(file_extension("README"), "")
        self.assertEqual(file_extension(None), "")
        self.assertEqual(file_extension("trailing."), "")


class ValidateUploadTests(unittest.TestCase):
    def test_images_and_videos_keep_declared_type(self):
        self.assertEqual(validate_upload("a.png", "image/png", 10, 100), "image/png")
        self.assertEqual(
            validate_upload("clip.mov", "video/quicktime", 10, 100), "video/quicktime"
        )

    def test_ksplat_falls_back_to_binary(self):
        self.assertEqual(
            validate_upload("scene.ksplat", None, 10, 100), "application/octet-stream"
        )
        self.assertEqual(
            validate_upload("scene.ksplat", "text/plain", 10, 100),
            "application/octet-stream",
        )

    def test_other_types_rejected(self):
        with self.assertRaises(UploadValidationError):
            validate_upload("notes.txt", "text/plain", 10, 100)
        with self.assertRaises(UploadValidationError):
            validate_upload("archive.zip", "application/zip", 10, 100)

    def test_size_limits(self):
        with self.assertRaises(PayloadTooLargeError):
            validate_upload("a.png", "image/png", 101, 100)
        with self.assertRaises(UploadValidationError):
            validate_upload("a.png", "image/png", 0, 100)


class UploadCoordinatorTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.coordinator = UploadCoordinator(self.db, self.storage)

    def test_store_writes_object_under_id_key(self):
        record = self.coordinator.store(
            JPEG_BYTES,
            "image/jpeg",
            "photo.jpeg",
            DisasterType.FLOOD,
            latitude=37.5665,
            longitude=126.978,
        )
        self.assertEqual(record.key, f"uploads/{record.id}.jpeg")
        self.assertEqual(self.storage.get_bytes(record.key), JPEG_BYTES)
        self.assertEqual(self.storage.content_types[record.key], "image/jpeg")
        self.assertEqual(record.size, len(JPEG_BYTES))
        self.assertEqual(record.metadata["extension"], ".jpeg")
        self.assertEqual(record.metadata["encoding"], "7bit")
        self.assertIs(self.db.get_upload(record.id), record)

    def test_key_without_extension_or_prefix(self):
        coordinator = UploadCoordinator(self.db, self.storage, key_prefix="")
        record = coordinator.store(b"splat", "application/octet-stream", "blob", DisasterType.FIRE)
        self.assertEqual(record.key, record.id)

    def test_repeated_uploads_get_distinct_keys(self):
        first = self.coordinator.store(JPEG_BYTES, "image/jpeg", "a.jpeg", DisasterType.FIRE)
        second = self.coordinator.store(JPEG_BYTES, "image/jpeg", "a.jpeg", DisasterType.FIRE)
        self.assertNotEqual(first.id, second.id)
        self.assertNotEqual(first.key, second.key)
        self.assertEqual(len(self.storage.stored_objects), 2)

    def test_failed_write_rolls_back_row_and_object(self):
        storage = FailingStorageClient()
        coordinator = UploadCoordinator(self.db, storage)
        with self.assertRaises(StorageWriteError) as ctx:
            coordinator.store(JPEG_BYTES, "image/jpeg", "a.jpeg", DisasterType.TYPHOON)

        self.assertEqual(self.db.uploads, {})
        self.assertIsNone(self.db.get_upload(ctx.exception.upload_id))
        self.assertEqual(storage.delete_calls, [ctx.exception.key])
        self.assertEqual(storage.stored_objects, {})

    def test_failed_object_cleanup_still_removes_row(self):
        storage = FailingStorageClient(fail_delete=True)
        coordinator = UploadCoordinator(self.db, storage)
        with self.assertRaises(StorageWriteError):
            coordinator.store(JPEG_BYTES, "image/jpeg", "a.jpeg", DisasterType.TYPHOON)
        self.assertEqual(self.db.uploads, {})

    def test_unexpected_write_error_rolls_back(self):
        coordinator = UploadCoordinator(self.db, DroppedConnectionStorageClient())
        with self.assertRaises(StorageWriteError) as ctx:
            coordinator.store(JPEG_BYTES, "image/jpeg", "a.jpeg", DisasterType.FLOOD)

        self.assertEqual(self.db.uploads, {})
        self.assertIsInstance(ctx.exception.__cause__, ConnectionResetError)

    def test_failed_rollback_is_surfaced(self):
        db = BrokenDeleteDbClient()
        coordinator = UploadCoordinator(db, FailingStorageClient())
        with self.assertRaises(CompensationError) as ctx:
            coordinator.store(JPEG_BYTES, "image/jpeg", "a.jpeg", DisasterType.EARTHQUAKE)

        error = ctx.exception
        self.assertIn(error.upload_id, db.uploads)
        self.assertIsNone(db.uploads[error.upload_id].key)
        self.assertIn("put failed", str(error.original))
        # Pending rows stay invisible to readers.
        self.assertIsNone(db.get_upload(error.upload_id))

    def test_failed_insert_skips_storage(self):
        storage = RecordingStorageClient()
        coordinator = UploadCoordinator(BrokenInsertDbClient(), storage)
        with self.assertRaises(RuntimeError):
            coordinator.store(JPEG_BYTES, "image/jpeg", "a.jpeg", DisasterType.FLOOD)
        self.assertEqual(storage.put_calls, [])

    def test_failed_key_update_removes_object_and_row(self):
        db = BrokenKeyUpdateDbClient()
        coordinator = UploadCoordinator(db, self.storage)
        with self.assertRaisesRegex(RuntimeError, "serialize"):
            coordinator.store(JPEG_BYTES, "image/jpeg", "a.jpeg", DisasterType.LANDSLIDE)
        self.assertEqual(db.uploads, {})
        self.assertEqual(self.storage.stored_objects, {})


if __name__ == "__main__":
    unittest.main()

"""
Contract tests for storage providers.
Tests that all storage providers implement the same interface correctly.
"""

import io
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from unittest.mock import Mock
from uuid import uuid4

import pytest

from src.exceptions import StorageConnectionError, StorageDownloadError
from src.services.storage_service import (
    LocalFileSystemProvider,
    MinIOStorageProvider,
    StorageProvider,
)


class StorageProviderContract(ABC):
    """Contract that all storage providers must satisfy."""

    @abstractmethod
    def create_provider(self) -> StorageProvider:
        """Create a storage provider instance for testing."""

    @abstractmethod
    def cleanup_provider(self, provider: StorageProvider):
        """Clean up after testing."""

    def test_upload_and_download_bytes(self):
        provider = self.create_provider()
        try:
            object_name = f"{uuid4()}/file_{uuid4().hex[:8]}.txt"

            result = provider.upload_file(b"Hello, World!", object_name)

            assert result == f"{provider.bucket_name}/{object_name}"
            assert provider.download_file(object_name) == b"Hello, World!"
            assert provider.file_exists(object_name) is True

            provider.delete_file(object_name)
            assert provider.file_exists(object_name) is False
        finally:
            self.cleanup_provider(provider)

    def test_upload_from_file_object(self):
        provider = self.create_provider()
        try:
            object_name = f"{uuid4()}/fileobj.txt"
            provider.upload_file(io.BytesIO(b"File object test content"), object_name)
            assert provider.download_file(object_name) == b"File object test content"
        finally:
            self.cleanup_provider(provider)

    def test_upload_replaces_existing_object(self):
        provider = self.create_provider()
        try:
            object_name = f"{uuid4()}/replace.csv"
            provider.upload_file(b"old", object_name)
            provider.upload_file(b"new", object_name)
            assert provider.download_file(object_name) == b"new"
        finally:
            self.cleanup_provider(provider)

    def test_listing_by_prefix(self):
        provider = self.create_provider()
        try:
            folder, other = str(uuid4()), str(uuid4())
            provider.upload_file(b"1", f"{folder}/b.csv")
            provider.upload_file(b"2", f"{folder}/a.csv")
            provider.upload_file(b"3", f"{other}/c.csv")

            assert provider.list_files(f"{folder}/") == [f"{folder}/a.csv", f"{folder}/b.csv"]
        finally:
            self.cleanup_provider(provider)

    def test_metadata(self):
        provider = self.create_provider()
        try:
            object_name = f"{uuid4()}/meta.txt"
            provider.upload_file(b"Metadata test", object_name, metadata={"author": "test"})

            metadata = provider.get_file_metadata(object_name)

            assert metadata["size"] == len(b"Metadata test")
            assert "last_modified" in metadata
            assert provider.get_file_metadata(f"{uuid4()}/missing.txt") == {}
        finally:
            self.cleanup_provider(provider)

    def test_missing_object_download_fails(self):
        provider = self.create_provider()
        try:
            with pytest.raises(StorageDownloadError):
                provider.download_file(f"{uuid4()}/missing.txt")
        finally:
            self.cleanup_provider(provider)

    def test_file_url(self):
        provider = self.create_provider()
        try:
            object_name = f"{uuid4()}/url.txt"
            provider.upload_file(b"x", object_name)
            assert object_name.split("/")[-1] in provider.get_file_url(object_name, expires_in=60)
        finally:
            self.cleanup_provider(provider)

    def test_health_check(self):
        provider = self.create_provider()
        try:
            assert provider.health_check() is True
        finally:
            self.cleanup_provider(provider)


class TestLocalFileSystemProviderContract(StorageProviderContract):
    """Contract tests for LocalFileSystemProvider."""

    def create_provider(self) -> StorageProvider:
        return LocalFileSystemProvider(base_path=tempfile.mkdtemp(), bucket_name="study-data")

    def cleanup_provider(self, provider: StorageProvider):
        shutil.rmtree(provider.base_path, ignore_errors=True)


@pytest.mark.skipif(not os.getenv("MINIO_TEST_ENDPOINT"), reason="Requires running MinIO instance")
class TestMinIOProviderContract(StorageProviderContract):
    """Contract tests for MinIOStorageProvider against a live server."""

    def create_provider(self) -> StorageProvider:
        return MinIOStorageProvider(
            endpoint=os.environ["MINIO_TEST_ENDPOINT"],
            access_key=os.getenv("MINIO_TEST_ACCESS_KEY", "minioadmin"),
            secret_key=os.getenv("MINIO_TEST_SECRET_KEY", "minioadmin"),
            bucket_name=f"contract-{uuid4().hex[:12]}",
        )

    def cleanup_provider(self, provider: StorageProvider):
        for name in provider.list_files():
            provider.delete_file(name)
        provider.client.remove_bucket(provider.bucket_name)


class TestMinIOProviderWithMockClient:
    """Client interaction of the MinIO provider without a server."""

    def _provider(self, client):
        return MinIOStorageProvider("localhost:9000", "key", "secret", "study-data", client=client)

    def test_missing_bucket_is_created(self):
        client = Mock()
        client.bucket_exists.return_value = False

        self._provider(client)

        client.make_bucket.assert_called_once_with("study-data")

    def test_existing_bucket_left_alone(self):
        client = Mock()
        client.bucket_exists.return_value = True

        self._provider(client)

        client.make_bucket.assert_not_called()

    def test_unreachable_server(self):
        client = Mock()
        client.bucket_exists.side_effect = ConnectionError("refused")

        with pytest.raises(StorageConnectionError):
            self._provider(client)

    def test_upload_passes_length_and_content_type(self):
        client = Mock()
        provider = self._provider(client)

        provider.upload_file(b"a,b\n", "s/data.csv")

        kwargs = client.put_object.call_args.kwargs
        assert kwargs["bucket_name"] == "study-data"
        assert kwargs["object_name"] == "s/data.csv"
        assert kwargs["length"] == 4
        assert kwargs["content_type"] == "text/csv"

    def test_download_releases_connection(self):
        client = Mock()
        client.get_object.return_value.read.return_value = b"payload"
        provider = self._provider(client)

        assert provider.download_file("s/data.csv") == b"payload"
        client.get_object.return_value.release_conn.assert_called_once()

    def test_listing_is_recursive_and_sorted(self):
        client = Mock()
        client.list_objects.return_value = [Mock(object_name="s/b.csv"), Mock(object_name="s/a.csv")]
        provider = self._provider(client)

        assert provider.list_files("s/") == ["s/a.csv", "s/b.csv"]
        client.list_objects.assert_called_once_with("study-data", prefix="s/", recursive=True)

    def test_health_check_failure(self):
        client = Mock()
        provider = self._provider(client)
        client.bucket_exists.side_effect = ConnectionError("down")

        assert provider.health_check() is False

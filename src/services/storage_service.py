"""
Storage Service Layer for the study platform.
Provides an abstraction over object storage (MinIO or local filesystem) and a guarded
facade that applies the storage object policies to every operation on study files.
"""

import io
import json
import logging
import mimetypes
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, BinaryIO
from uuid import UUID

from minio import Minio
from minio.error import S3Error
from sqlalchemy.orm import Session

from config.config import config
from src.data.database import get_session
from src.exceptions import (
    InvalidInputError,
    StorageConnectionError,
    StorageDeleteError,
    StorageDownloadError,
    StorageError,
    StorageUploadError,
)
from src.security.identity import Identity
from src.security.policies import Command, PolicyEnforcer

logger = logging.getLogger(__name__)


class StorageProvider(ABC):
    """Abstract base class for storage providers. Objects live in one bucket."""

    bucket_name: str

    @abstractmethod
    def upload_file(
        self,
        file_data: bytes | BinaryIO,
        object_name: str,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """
        Upload a file to storage, replacing any object with the same key.

        Args:
            file_data: File data (bytes or file-like object)
            object_name: Key for the stored object, may contain folders
            content_type: MIME type of the file
            metadata: Additional metadata to store with the file

        Returns:
            str: Location of the stored object

        Raises:
            StorageUploadError: If upload fails
        """

    @abstractmethod
    def download_file(self, object_name: str) -> bytes:
        """
        Download a file from storage.

        Raises:
            StorageDownloadError: If the object is missing or cannot be read
        """

    @abstractmethod
    def delete_file(self, object_name: str) -> bool:
        """
        Delete a file from storage.

        Raises:
            StorageDeleteError: If deletion fails
        """

    @abstractmethod
    def file_exists(self, object_name: str) -> bool:
        """Check if a file exists in storage."""

    @abstractmethod
    def list_files(self, prefix: str = "") -> list[str]:
        """Keys of all objects under prefix, sorted."""

    @abstractmethod
    def get_file_url(self, object_name: str, expires_in: int = 3600) -> str:
        """Get a URL to access the file."""

    @abstractmethod
    def get_file_metadata(self, object_name: str) -> dict[str, Any]:
        """Get metadata for a stored file; empty when the object is missing."""

    @abstractmethod
    def health_check(self) -> bool:
        """Check if the storage provider is healthy."""


class MinIOStorageProvider(StorageProvider):
    """MinIO (S3-compatible) storage provider."""

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket_name: str,
        secure: bool = False,
        client=None,
    ):
        """
        Initialize MinIO storage provider.

        Args:
            endpoint: MinIO server endpoint
            access_key: Access key for authentication
            secret_key: Secret key for authentication
            bucket_name: Bucket name for storing files
            secure: Whether to use HTTPS
            client: Preconfigured client, mainly for tests
        """
        self.endpoint = endpoint
        self.bucket_name = bucket_name
        self.secure = secure

        try:
            self.client = client or Minio(
                endpoint=endpoint, access_key=access_key, secret_key=secret_key, secure=secure
            )
            self._ensure_bucket_exists()
        except StorageError:
            raise
        except Exception as e:
            raise StorageConnectionError(f"Failed to initialize MinIO client: {e}") from e

        logger.info(f"MinIO storage provider initialized: {endpoint}/{bucket_name}")

    def _ensure_bucket_exists(self) -> None:
        """Create the bucket if it is missing. New buckets carry no public policy."""
        try:
            if not self.client.bucket_exists(self.bucket_name):
                self.client.make_bucket(self.bucket_name)
                logger.info(f"Created MinIO bucket: {self.bucket_name}")
        except Exception as e:
            raise StorageConnectionError(f"Failed to ensure bucket exists: {e}") from e

    def upload_file(
        self,
        file_data: bytes | BinaryIO,
        object_name: str,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Upload file to MinIO."""
        try:
            if isinstance(file_data, bytes):
                file_obj = io.BytesIO(file_data)
                length = len(file_data)
            else:
                file_obj = file_data
                current_pos = file_data.tell()
                file_data.seek(0, 2)
                length = file_data.tell() - current_pos
                file_data.seek(current_pos)

            self.client.put_object(
                bucket_name=self.bucket_name,
                object_name=object_name,
                data=file_obj,
                length=length,
                content_type=content_type or _guess_content_type(object_name),
                metadata=metadata,
            )
            logger.debug(f"File uploaded to MinIO: {object_name}")
            return f"{self.bucket_name}/{object_name}"

        except Exception as e:
            logger.error(f"MinIO upload failed for {object_name}: {e}")
            raise StorageUploadError(f"Failed to upload to MinIO: {e}") from e

    def download_file(self, object_name: str) -> bytes:
        """Download file from MinIO."""
        response = None
        try:
            response = self.client.get_object(self.bucket_name, object_name)
            return response.read()
        except Exception as e:
            logger.error(f"MinIO download failed for {object_name}: {e}")
            raise StorageDownloadError(f"Failed to download from MinIO: {e}") from e
        finally:
            if response is not None:
                response.close()
                response.release_conn()

    def delete_file(self, object_name: str) -> bool:
        """Delete file from MinIO."""
        try:
            self.client.remove_object(self.bucket_name, object_name)
            logger.debug(f"File deleted from MinIO: {object_name}")
            return True
        except Exception as e:
            logger.error(f"MinIO deletion failed for {object_name}: {e}")
            raise StorageDeleteError(f"Failed to delete from MinIO: {e}") from e

    def file_exists(self, object_name: str) -> bool:
        """Check if file exists in MinIO."""
        try:
            self.client.stat_object(self.bucket_name, object_name)
            return True
        except S3Error as e:
            if e.code == "NoSuchKey":
                return False
            raise StorageError(f"MinIO existence check failed for {object_name}: {e}") from e

    def list_files(self, prefix: str = "") -> list[str]:
        try:
            objects = self.client.list_objects(self.bucket_name, prefix=prefix, recursive=True)
            return sorted(obj.object_name for obj in objects)
        except Exception as e:
            logger.error(f"MinIO listing failed for prefix {prefix!r}: {e}")
            raise StorageError(f"Failed to list MinIO objects: {e}") from e

    def get_file_url(self, object_name: str, expires_in: int = 3600) -> str:
        """Presigned GET URL; the bucket itself is never public."""
        try:
            return self.client.presigned_get_object(
                bucket_name=self.bucket_name,
                object_name=object_name,
                expires=timedelta(seconds=expires_in),
            )
        except Exception as e:
            logger.error(f"MinIO URL generation failed for {object_name}: {e}")
            raise StorageError(f"Failed to presign MinIO URL: {e}") from e

    def get_file_metadata(self, object_name: str) -> dict[str, Any]:
        """Get file metadata from MinIO."""
        try:
            stat = self.client.stat_object(self.bucket_name, object_name)
        except S3Error as e:
            logger.warning(f"MinIO metadata retrieval failed for {object_name}: {e}")
            return {}

        return {
            "size": stat.size,
            "etag": stat.etag,
            "content_type": stat.content_type,
            "last_modified": stat.last_modified,
            "metadata": stat.metadata or {},
        }

    def health_check(self) -> bool:
        """Check MinIO connection health."""
        try:
            return self.client.bucket_exists(self.bucket_name)
        except Exception as e:
            logger.error(f"MinIO health check failed: {e}")
            return False


class LocalFileSystemProvider(StorageProvider):
    """Local filesystem storage provider; objects live under <base_path>/<bucket>/<key>."""

    def __init__(self, base_path: str, bucket_name: str):
        self.bucket_name = bucket_name
        self.base_path = Path(base_path)
        self.bucket_path = (self.base_path / bucket_name).resolve()
        self.bucket_path.mkdir(parents=True, exist_ok=True)

        logger.info(f"Local filesystem storage provider initialized: {self.bucket_path}")

    def _get_full_path(self, object_name: str) -> Path:
        """Get full path for an object, rejecting keys that escape the bucket."""
        if not object_name or object_name.startswith("/") or object_name.endswith("/"):
            raise StorageError(f"Invalid object name: {object_name!r}")
        full_path = (self.bucket_path / object_name).resolve()
        if not full_path.is_relative_to(self.bucket_path):
            raise StorageError(f"Object name escapes the bucket: {object_name!r}")
        return full_path

    @staticmethod
    def _metadata_path(file_path: Path) -> Path:
        return file_path.with_name(file_path.name + ".meta")

    def upload_file(
        self,
        file_data: bytes | BinaryIO,
        object_name: str,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Upload file to local filesystem."""
        try:
            target_path = self._get_full_path(object_name)
            target_path.parent.mkdir(parents=True, exist_ok=True)

            with open(target_path, "wb") as f:
                if isinstance(file_data, bytes):
                    f.write(file_data)
                else:
                    f.write(file_data.read())

            stored_metadata = dict(metadata or {})
            if content_type:
                stored_metadata["content_type"] = content_type
            if stored_metadata:
                with open(self._metadata_path(target_path), "w") as f:
                    json.dump(stored_metadata, f)

            logger.debug(f"File uploaded to local storage: {target_path}")
            return f"{self.bucket_name}/{object_name}"

        except Exception as e:
            logger.error(f"Local storage upload failed for {object_name}: {e}")
            raise StorageUploadError(f"Failed to upload to local storage: {e}") from e

    def download_file(self, object_name: str) -> bytes:
        """Download file from local filesystem."""
        try:
            source_path = self._get_full_path(object_name)
            if not source_path.is_file():
                raise FileNotFoundError(object_name)
            return source_path.read_bytes()
        except Exception as e:
            logger.error(f"Local storage download failed for {object_name}: {e}")
            raise StorageDownloadError(f"Failed to download from local storage: {e}") from e

    def delete_file(self, object_name: str) -> bool:
        """Delete file from local filesystem."""
        try:
            file_path = self._get_full_path(object_name)
            metadata_path = self._metadata_path(file_path)

            existed = file_path.exists()
            if existed:
                file_path.unlink()
            if metadata_path.exists():
                metadata_path.unlink()

            logger.debug(f"File deleted from local storage: {file_path}")
            return existed

        except Exception as e:
            logger.error(f"Local storage deletion failed for {object_name}: {e}")
            raise StorageDeleteError(f"Failed to delete from local storage: {e}") from e

    def file_exists(self, object_name: str) -> bool:
        """Check if file exists in local filesystem."""
        return self._get_full_path(object_name).is_file()

    def list_files(self, prefix: str = "") -> list[str]:
        names = []
        for path in self.bucket_path.rglob("*"):
            if not path.is_file() or path.name.endswith(".meta"):
                continue
            name = path.relative_to(self.bucket_path).as_posix()
            if name.startswith(prefix):
                names.append(name)
        return sorted(names)

    def get_file_url(self, object_name: str, expires_in: int = 3600) -> str:
        """Get file URL (file:// path) for local filesystem."""
        return self._get_full_path(object_name).as_uri()

    def get_file_metadata(self, object_name: str) -> dict[str, Any]:
        """Get file metadata from local filesystem."""
        file_path = self._get_full_path(object_name)
        if not file_path.is_file():
            return {}

        stat = file_path.stat()
        metadata = {
            "size": stat.st_size,
            "last_modified": datetime.fromtimestamp(stat.st_mtime),
            "content_type": _guess_content_type(object_name),
            "metadata": {},
        }

        metadata_path = self._metadata_path(file_path)
        if metadata_path.exists():
            try:
                with open(metadata_path) as f:
                    custom_metadata = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Failed to load metadata for {object_name}: {e}")
                custom_metadata = {}
            if "content_type" in custom_metadata:
                metadata["content_type"] = custom_metadata.pop("content_type")
            metadata["metadata"] = custom_metadata

        return metadata

    def health_check(self) -> bool:
        """Check local filesystem health."""
        return self.bucket_path.exists() and self.bucket_path.is_dir()


def _guess_content_type(object_name: str) -> str:
    return mimetypes.guess_type(object_name)[0] or "application/octet-stream"


class StudyDataStorageService:
    """
    Guarded access to study files.

    Every call names the acting identity. The storage object policy is evaluated against
    the bucket and the object key before the provider is touched: only researchers whose
    study id is the key's first folder get through. Callers running inside a database
    transaction pass their session so the check shares it.
    """

    def __init__(self, provider: StorageProvider):
        self.provider = provider
        logger.info(f"Study data storage initialized with {type(provider).__name__}")

    @property
    def bucket_name(self) -> str:
        return self.provider.bucket_name

    @contextmanager
    def _policies(self, identity: Identity, session: Session | None):
        if session is not None:
            yield PolicyEnforcer(session, identity)
        else:
            with get_session() as own_session:
                yield PolicyEnforcer(own_session, identity)

    def _guard(self, identity: Identity, command: Command, object_name: str, session: Session | None) -> None:
        if not object_name.rsplit("/", 1)[-1]:
            raise InvalidInputError("object_name", object_name, "must end with a file name")
        with self._policies(identity, session) as policies:
            policies.check_object(command, self.bucket_name, object_name)

    @staticmethod
    def object_name_for(study_id: UUID, file_name: str, timestamp: datetime | None = None) -> str:
        """Key a study file under its study folder: <study id>/<timestamp>_<file name>."""
        stamp = (timestamp or datetime.now()).strftime("%Y%m%d_%H%M%S_%f")
        return f"{study_id}/{stamp}_{Path(file_name).name}"

    def put_object(
        self,
        identity: Identity,
        object_name: str,
        file_data: bytes | BinaryIO,
        content_type: str | None = None,
        session: Session | None = None,
    ) -> str:
        self._guard(identity, Command.INSERT, object_name, session)
        return self.provider.upload_file(file_data, object_name, content_type)

    def get_object(self, identity: Identity, object_name: str, session: Session | None = None) -> bytes:
        self._guard(identity, Command.SELECT, object_name, session)
        return self.provider.download_file(object_name)

    def update_object(
        self,
        identity: Identity,
        object_name: str,
        file_data: bytes | BinaryIO,
        content_type: str | None = None,
        session: Session | None = None,
    ) -> str:
        """Overwrite an existing object in place."""
        self._guard(identity, Command.UPDATE, object_name, session)
        if not self.provider.file_exists(object_name):
            raise StorageUploadError(f"Cannot update missing object: {object_name}")
        return self.provider.upload_file(file_data, object_name, content_type)

    def delete_object(self, identity: Identity, object_name: str, session: Session | None = None) -> bool:
        self._guard(identity, Command.DELETE, object_name, session)
        return self.provider.delete_file(object_name)

    def get_file_url(self, identity: Identity, object_name: str, session: Session | None = None) -> str:
        self._guard(identity, Command.SELECT, object_name, session)
        return self.provider.get_file_url(object_name, config.storage.presigned_url_expiry_seconds)

    def list_study_files(self, identity: Identity, study_id: UUID, session: Session | None = None) -> list[str]:
        """Keys under the study folder that the identity may read."""
        names = self.provider.list_files(f"{study_id}/")
        with self._policies(identity, session) as policies:
            return policies.object_filter(self.bucket_name, names)

    def health_check(self) -> bool:
        return self.provider.health_check()


# Global storage service instance
_storage_service: StudyDataStorageService | None = None


def get_storage_service() -> StudyDataStorageService:
    """Get the global storage service instance."""
    global _storage_service

    if _storage_service is None:
        _storage_service = create_storage_service()

    return _storage_service


def set_storage_service(service: StudyDataStorageService | None) -> None:
    """Set the global storage service instance."""
    global _storage_service
    _storage_service = service


def create_storage_service() -> StudyDataStorageService:
    """Create storage service based on configuration."""
    storage = config.storage
    if storage.use_minio and config.feature_flags.enable_minio_storage:
        provider = MinIOStorageProvider(
            endpoint=storage.minio_endpoint,
            access_key=storage.minio_access_key,
            secret_key=storage.minio_secret_key,
            bucket_name=storage.bucket_name,
            secure=storage.minio_secure,
        )
    else:
        provider = LocalFileSystemProvider(storage.local_storage_path, storage.bucket_name)

    return StudyDataStorageService(provider)

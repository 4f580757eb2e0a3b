"""
Data upload service for the study platform.
Researchers attach data files to their studies; each file is stored in the study-data
bucket under the study folder and described by a study_data_uploads row.
"""

import csv
import io
import logging
from uuid import UUID

from config.config import config
from src.data.database import get_session
from src.data.repositories import DataUploadRepository
from src.data.schemas import DataUploadCreate, DataUploadResponse, DataUploadUpdate
from src.exceptions import RecordNotFoundError, StorageError
from src.security.identity import Identity

from .storage_service import StudyDataStorageService, get_storage_service

logger = logging.getLogger(__name__)


def count_csv_rows(file_data: bytes, encoding: str = "utf-8") -> int | None:
    """Data rows in a CSV payload, not counting the header; None if it cannot be parsed."""
    try:
        text = file_data.decode(encoding)
    except UnicodeDecodeError:
        return None
    try:
        rows = [row for row in csv.reader(io.StringIO(text)) if any(cell.strip() for cell in row)]
    except csv.Error as e:
        logger.warning(f"Could not parse CSV payload: {e}")
        return None
    return max(len(rows) - 1, 0)


class DataUploadService:
    """
    Stores study data files together with their metadata.

    An upload writes the metadata row and the object in one transaction: if either is
    refused or fails, nothing is kept. Deletion commits the row removal first and removes
    the object afterwards.
    """

    def __init__(self, storage: StudyDataStorageService | None = None):
        self.storage = storage or get_storage_service()

    def _row_count(self, file_name: str, file_data: bytes, row_count: int | None) -> int | None:
        if row_count is not None:
            return row_count
        if config.feature_flags.derive_csv_row_count and file_name.lower().endswith(".csv"):
            return count_csv_rows(file_data)
        return None

    def upload_file(
        self,
        identity: Identity,
        study_id: UUID,
        file_name: str,
        file_data: bytes,
        description: str | None = None,
        row_count: int | None = None,
        content_type: str | None = None,
    ) -> DataUploadResponse:
        """
        Store a data file for a study the acting researcher owns.

        Raises:
            PolicyViolationError: If the identity does not own the study
            StorageUploadError: If the object store rejects the write
        """
        object_name = self.storage.object_name_for(study_id, file_name)
        with get_session() as session:
            upload = DataUploadRepository(session, identity).create(
                DataUploadCreate(
                    study_id=study_id,
                    file_name=file_name,
                    file_path=object_name,
                    file_size=len(file_data),
                    row_count=self._row_count(file_name, file_data, row_count),
                    description=description,
                )
            )
            self.storage.put_object(identity, object_name, file_data, content_type, session=session)
            logger.info(f"Stored {file_name} ({len(file_data)} bytes) for study {study_id} as {object_name}")
            return DataUploadResponse.model_validate(upload)

    def download_file(self, identity: Identity, upload_id: UUID) -> bytes:
        with get_session() as session:
            upload = DataUploadRepository(session, identity).get_by_id(upload_id)
            if upload is None:
                raise RecordNotFoundError("StudyDataUpload", str(upload_id))
            return self.storage.get_object(identity, upload.file_path, session=session)

    def replace_file(
        self,
        identity: Identity,
        upload_id: UUID,
        file_data: bytes,
        row_count: int | None = None,
        content_type: str | None = None,
    ) -> DataUploadResponse:
        """Overwrite the stored bytes and refresh size and row count."""
        with get_session() as session:
            repository = DataUploadRepository(session, identity)
            current = repository.get_by_id(upload_id)
            if current is None:
                raise RecordNotFoundError("StudyDataUpload", str(upload_id))
            upload = repository.update(
                upload_id,
                DataUploadUpdate(
                    file_size=len(file_data),
                    row_count=self._row_count(current.file_name, file_data, row_count),
                ),
            )
            self.storage.update_object(identity, upload.file_path, file_data, content_type, session=session)
            return DataUploadResponse.model_validate(upload)

    def update_upload(self, identity: Identity, upload_id: UUID, upload_data: DataUploadUpdate) -> DataUploadResponse:
        """Change metadata only; the stored object is untouched."""
        with get_session() as session:
            upload = DataUploadRepository(session, identity).update(upload_id, upload_data)
            return DataUploadResponse.model_validate(upload)

    def delete_upload(self, identity: Identity, upload_id: UUID) -> bool:
        """
        Remove the metadata row, then the stored object.

        The object is removed only once the row deletion has committed, so a failed
        commit never leaves a row pointing at a missing object. A failed object removal
        leaves an orphaned object behind and is re-raised.
        """
        with get_session() as session:
            repository = DataUploadRepository(session, identity)
            upload = repository.get_by_id(upload_id)
            file_path = upload.file_path if upload is not None else None
            repository.delete(upload_id)

        try:
            self.storage.delete_object(identity, file_path)
        except StorageError as e:
            logger.error(f"Upload {upload_id} deleted but object {file_path} remains: {e}")
            raise
        logger.info(f"Deleted upload {upload_id} and object {file_path}")
        return True

    def get_upload(self, identity: Identity, upload_id: UUID) -> DataUploadResponse | None:
        with get_session() as session:
            upload = DataUploadRepository(session, identity).get_by_id(upload_id)
            return DataUploadResponse.model_validate(upload) if upload else None

    def list_uploads(self, identity: Identity, study_id: UUID) -> list[DataUploadResponse]:
        with get_session() as session:
            uploads = DataUploadRepository(session, identity).list_for_study(study_id)
            return [DataUploadResponse.model_validate(u) for u in uploads]

    def get_download_url(self, identity: Identity, upload_id: UUID) -> str:
        with get_session() as session:
            upload = DataUploadRepository(session, identity).get_by_id(upload_id)
            if upload is None:
                raise RecordNotFoundError("StudyDataUpload", str(upload_id))
            return self.storage.get_file_url(identity, upload.file_path, session=session)

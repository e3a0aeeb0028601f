"""Validates owner references and persists file metadata records."""

import os
from typing import List, Optional
import structlog

from chunkvault.common.errors import NotFoundError, ReferenceNotFoundError
from chunkvault.common.models import FileMetadata, utcnow
from chunkvault.service.collaborators import LookupService, MetadataStore

logger = structlog.get_logger(__name__)


class MetadataRecorder:
    """Owns the FileMetadata lifecycle: record, get, delete."""

    def __init__(self, lookup: LookupService, store: MetadataStore):
        """
        Initialize the recorder.

        Args:
            lookup: Resolves students and submissions
            store: Persists metadata records
        """
        self.lookup = lookup
        self.store = store

    def check_references(
        self,
        file_id: int,
        submission_id: Optional[int],
        student_id: Optional[int]
    ) -> None:
        """
        Resolve the submission and student a file is recorded against.

        Raises:
            ReferenceNotFoundError: If the submission or student is unknown
        """
        if submission_id is None or self.lookup.resolve_submission(submission_id) is None:
            logger.error("Submission not found", file_id=file_id, submission_id=submission_id)
            raise ReferenceNotFoundError("Submission", submission_id)

        if student_id is None or self.lookup.resolve_user(student_id) is None:
            logger.error("Student not found", file_id=file_id, student_id=student_id)
            raise ReferenceNotFoundError("User", student_id)

    def record_completed_upload(
        self,
        file_id: int,
        storage_path: str,
        total_size: int,
        file_type: Optional[str],
        file_name: str,
        submission_id: Optional[int],
        student_id: Optional[int]
    ) -> FileMetadata:
        """
        Persist the metadata of a freshly written artifact.

        The artifact is left in place when a reference does not resolve.
        When a record with the same id is replaced, the artifact of the old
        record is removed if it lives at a different path.

        Raises:
            ReferenceNotFoundError: If the submission or student is unknown
        """
        try:
            self.check_references(file_id, submission_id, student_id)
        except ReferenceNotFoundError:
            logger.error("Artifact left without metadata", file_id=file_id, storage_path=storage_path)
            raise

        previous = self.store.get(file_id)
        if previous is not None:
            logger.warning(
                "Replacing existing file metadata",
                file_id=file_id,
                previous_storage_path=previous.storage_path
            )

        now = utcnow()
        record = FileMetadata(
            id=file_id,
            file_name=file_name,
            file_size=total_size,
            file_type=file_type,
            storage_path=storage_path,
            submission_id=submission_id,
            student_id=student_id,
            created_at=now,
            last_update=now,
        )
        self.store.save(record)

        if previous is not None and previous.storage_path != storage_path:
            self._remove_artifact(file_id, previous.storage_path)

        logger.info(
            "File metadata recorded",
            file_id=file_id,
            file_size=total_size,
            submission_id=submission_id,
            student_id=student_id
        )
        return record

    def get(self, file_id: int) -> Optional[FileMetadata]:
        """Get a record by id, or None if absent."""
        return self.store.get(file_id)

    def list_all(self) -> List[FileMetadata]:
        """Get every stored record."""
        return self.store.list_all()

    def delete(self, file_id: int) -> bool:
        """
        Delete a record and, best effort, its artifact.

        A failure to remove the artifact is logged as a warning; the record
        is removed regardless.

        Returns:
            True if the artifact was removed from disk

        Raises:
            NotFoundError: If no record exists for file_id
        """
        record = self.store.get(file_id)
        if record is None:
            raise NotFoundError(file_id)

        artifact_removed = self._remove_artifact(file_id, record.storage_path)

        self.store.delete(file_id)
        logger.info("File metadata deleted", file_id=file_id, artifact_removed=artifact_removed)
        return artifact_removed

    def _remove_artifact(self, file_id: int, storage_path: str) -> bool:
        try:
            os.remove(storage_path)
        except OSError as e:
            logger.warning(
                "Artifact could not be removed",
                file_id=file_id,
                storage_path=storage_path,
                error=str(e)
            )
            return False
        return True

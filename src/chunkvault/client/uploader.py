"""Client for uploading local files as a sequence of fragments."""

import os
from typing import Callable, Optional
import structlog

from chunkvault.common.chunking import DEFAULT_CHUNK_SIZE, calculate_chunk_count, chunk_file
from chunkvault.common.errors import IncompleteUploadError
from chunkvault.common.models import FileMetadata, FragmentEnvelope, UploadOutcome
from chunkvault.service.file_service import FileService

logger = structlog.get_logger(__name__)

Submit = Callable[[FragmentEnvelope], UploadOutcome]


class FileUploader:
    """Splits local files and submits their fragments in order."""

    def __init__(self, service: FileService, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize the uploader.

        Args:
            service: File service receiving the fragments
            chunk_size: Fragment size in bytes
        """
        self.service = service
        self.chunk_size = chunk_size

    def upload_file(
        self,
        file_path: str,
        file_id: int,
        student_id: int,
        submission_id: int,
        file_type: Optional[str] = None
    ) -> FileMetadata:
        """
        Upload a local file.

        Args:
            file_path: Path to the file to upload
            file_id: Identifier to store the file under
            student_id: Uploading student
            submission_id: Owning submission
            file_type: Declared type (file extension if not provided)

        Returns:
            Metadata recorded for the file
        """
        result = {}

        def submit(envelope: FragmentEnvelope) -> UploadOutcome:
            outcome, record = self.service.submit_chunk(envelope)
            if record is not None:
                result['record'] = record
            return outcome

        self._send(file_path, file_id, student_id, submission_id, file_type, submit)
        return result['record']

    def replace_file(
        self,
        file_path: str,
        file_id: int,
        student_id: int,
        submission_id: int,
        file_type: Optional[str] = None
    ) -> FileMetadata:
        """Replace a stored file with the content of a local file."""
        replacement = self.service.replace(file_id)
        self._send(file_path, file_id, student_id, submission_id, file_type, replacement.submit)
        return replacement.result

    def _send(
        self,
        file_path: str,
        file_id: int,
        student_id: int,
        submission_id: int,
        file_type: Optional[str],
        submit: Submit
    ) -> None:
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"File not found: {file_path}")

        base_name, ext = os.path.splitext(os.path.basename(file_path))
        if file_type is None:
            file_type = ext.lstrip('.') or 'bin'

        file_size = os.path.getsize(file_path)
        # An empty file still travels as one empty fragment
        total_chunks = max(1, calculate_chunk_count(file_size, self.chunk_size))

        logger.info(
            "Starting file upload",
            file_id=file_id,
            file_path=file_path,
            file_size=file_size,
            total_chunks=total_chunks
        )

        chunks = chunk_file(file_path, self.chunk_size) if file_size else iter([b''])
        outcome = None
        for i, chunk in enumerate(chunks):
            envelope = FragmentEnvelope(
                file_id=file_id,
                chunk_index=i,
                total_chunks=total_chunks,
                payload=chunk,
                file_name=base_name,
                file_type=file_type,
                student_id=student_id,
                submission_id=submission_id,
            )
            outcome = submit(envelope)

            if outcome not in (UploadOutcome.ACCEPTED, UploadOutcome.COMPLETED):
                raise IncompleteUploadError(
                    f"Chunk {i} of file ID {file_id} was not accepted: {outcome.value}"
                )

            if (i + 1) % 10 == 0:
                logger.info(
                    "Progress",
                    file_id=file_id,
                    chunks_sent=i + 1,
                    total_chunks=total_chunks
                )

        if outcome != UploadOutcome.COMPLETED:
            raise IncompleteUploadError(
                f"Upload of file ID {file_id} did not complete; the file changed while reading"
            )

        logger.info("File upload complete", file_id=file_id, total_chunks=total_chunks)

"""Splits a stored artifact into fixed-size fragments for download."""

import os
from typing import Iterator
import structlog

from chunkvault.common.chunking import DEFAULT_CHUNK_SIZE, calculate_chunk_count
from chunkvault.common.errors import NotFoundError, StorageError
from chunkvault.common.models import FileMetadata, FragmentEnvelope
from chunkvault.service.metadata_recorder import MetadataRecorder

logger = structlog.get_logger(__name__)


class FragmentSequence:
    """
    Lazy, finite, restartable sequence of download fragments.

    Holds no read state between iterations: every ``iter()`` opens the
    artifact again and reads from byte 0.
    """

    def __init__(self, record: FileMetadata, chunk_size: int):
        self.record = record
        self.chunk_size = chunk_size
        self.total_chunks = calculate_chunk_count(record.file_size, chunk_size)

    def __len__(self) -> int:
        return self.total_chunks

    def __iter__(self) -> Iterator[FragmentEnvelope]:
        record = self.record
        try:
            with open(record.storage_path, 'rb') as f:
                for index in range(self.total_chunks):
                    payload = f.read(self.chunk_size)
                    if not payload:
                        raise StorageError(
                            f"Artifact for file ID {record.id} ended early at chunk {index}"
                        )
                    yield FragmentEnvelope(
                        file_id=record.id,
                        chunk_index=index,
                        total_chunks=self.total_chunks,
                        payload=payload,
                        file_name=record.file_name,
                        file_type=record.file_type,
                        student_id=record.student_id,
                        submission_id=record.submission_id,
                    )
        except OSError as e:
            logger.error(
                "Error reading artifact",
                file_id=record.id,
                storage_path=record.storage_path,
                error=str(e)
            )
            raise StorageError(f"Cannot read artifact for file ID {record.id}: {e}") from e


class ChunkSplitter:
    """Produces download fragments for stored files."""

    def __init__(self, recorder: MetadataRecorder):
        """
        Initialize the splitter.

        Args:
            recorder: Source of file metadata
        """
        self.recorder = recorder

    def split_for_download(
        self,
        file_id: int,
        chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> FragmentSequence:
        """
        Get the fragments of a stored file.

        Args:
            file_id: File identifier
            chunk_size: Maximum payload size of each fragment

        Returns:
            Restartable fragment sequence

        Raises:
            ValueError: If chunk_size is not positive
            NotFoundError: If no metadata exists for file_id
            StorageError: If the artifact is missing, unreadable or of the wrong size
        """
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")

        record = self.recorder.get(file_id)
        if record is None:
            raise NotFoundError(file_id)

        try:
            actual_size = os.path.getsize(record.storage_path)
        except OSError as e:
            logger.error(
                "Artifact missing for stored file",
                file_id=file_id,
                storage_path=record.storage_path,
                error=str(e)
            )
            raise StorageError(f"Artifact for file ID {file_id} is not available: {e}") from e

        if actual_size != record.file_size:
            logger.error(
                "Artifact size mismatch",
                file_id=file_id,
                expected_size=record.file_size,
                actual_size=actual_size
            )
            raise StorageError(
                f"Artifact for file ID {file_id} has {actual_size} bytes, "
                f"expected {record.file_size}"
            )

        sequence = FragmentSequence(record, chunk_size)
        logger.debug(
            "Download prepared",
            file_id=file_id,
            chunk_size=chunk_size,
            total_chunks=sequence.total_chunks
        )
        return sequence

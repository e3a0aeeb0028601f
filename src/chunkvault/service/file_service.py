"""File service wiring chunked upload, metadata and chunked download together."""

import threading
import time
from typing import Iterable, List, Optional, Tuple
import structlog

from chunkvault.common.config import StorageConfig
from chunkvault.common.errors import IncompleteUploadError
from chunkvault.common.models import FileMetadata, FragmentEnvelope, UploadOutcome
from chunkvault.service.collaborators import (
    InMemoryLookup,
    JsonFileMetadataStore,
    LookupService,
    MetadataStore,
)
from chunkvault.service.metadata_recorder import MetadataRecorder
from chunkvault.service.reassembler import Reassembler
from chunkvault.service.splitter import ChunkSplitter, FragmentSequence
from chunkvault.service.upload_coordinator import EvictionCallback, UploadCoordinator

logger = structlog.get_logger(__name__)


class ReplacementUpload:
    """
    Second half of a replace: the old record is already gone, and the file
    exists again only once this upload completes.
    """

    def __init__(self, service: "FileService", file_id: int):
        self._service = service
        self.file_id = file_id
        self.result: Optional[FileMetadata] = None

    @property
    def completed(self) -> bool:
        return self.result is not None

    def submit(self, envelope: FragmentEnvelope) -> UploadOutcome:
        """
        Submit one fragment of the replacement file.

        Raises:
            ValueError: If the envelope belongs to another file id
        """
        if envelope.file_id != self.file_id:
            raise ValueError(
                f"Fragment for file ID {envelope.file_id} submitted to replacement "
                f"of file ID {self.file_id}"
            )

        outcome, record = self._service.submit_chunk(envelope)
        if record is not None:
            self.result = record
            logger.info("File replaced", file_id=self.file_id)
        return outcome


class FileService:
    """Entry points for uploading, inspecting, replacing, deleting and downloading files."""

    def __init__(
        self,
        config: StorageConfig,
        lookup: Optional[LookupService] = None,
        store: Optional[MetadataStore] = None,
        on_evict: Optional[EvictionCallback] = None
    ):
        """
        Initialize the file service.

        Args:
            config: Storage configuration
            lookup: Student/submission lookup (built from config if omitted)
            store: Metadata store (JSON file at config.metadata_path if omitted)
            on_evict: Called for every expired upload buffer
        """
        self.config = config

        self.recorder = MetadataRecorder(
            lookup if lookup is not None else InMemoryLookup.from_config(config),
            store if store is not None else JsonFileMetadataStore(config.metadata_path),
        )
        self.coordinator = UploadCoordinator(
            Reassembler(config.storage_dir),
            self.recorder,
            on_evict=on_evict,
        )
        self.splitter = ChunkSplitter(self.recorder)

        self._sweep_lock = threading.Lock()
        self._last_sweep_time = time.time()

    def receive_chunk(self, envelope: FragmentEnvelope) -> UploadOutcome:
        """
        Upload entry point: accept one fragment.

        Args:
            envelope: Fragment to accept

        Returns:
            ACCEPTED, REJECTED_BAD_INDEX, OUT_OF_ORDER_DROPPED or COMPLETED
        """
        outcome, _ = self.submit_chunk(envelope)
        return outcome

    def submit_chunk(self, envelope: FragmentEnvelope) -> Tuple[UploadOutcome, Optional[FileMetadata]]:
        """Accept one fragment; the recorded metadata is returned on completion."""
        self._maybe_sweep()

        try:
            return self.coordinator.submit(envelope)
        except Exception as e:
            logger.error(
                "Error handling chunk",
                file_id=envelope.file_id,
                chunk_index=envelope.chunk_index,
                error=str(e)
            )
            raise

    def get_file_metadata(self, file_id: int) -> Optional[FileMetadata]:
        """Get metadata by id, or None if absent."""
        return self.recorder.get(file_id)

    def list_file_metadata(self) -> List[FileMetadata]:
        """Get metadata of every stored file."""
        return self.recorder.list_all()

    def delete_file(self, file_id: int) -> bool:
        """
        Delete a file's metadata and, best effort, its artifact.

        Returns:
            True if the artifact was removed from disk

        Raises:
            NotFoundError: If no record exists for file_id
        """
        return self.recorder.delete(file_id)

    def replace(self, file_id: int) -> ReplacementUpload:
        """
        Start replacing a stored file.

        The existing record and artifact are deleted right away. If the
        returned upload never completes, file_id stays missing.

        Raises:
            NotFoundError: If no record exists for file_id
        """
        self.recorder.delete(file_id)
        self.coordinator.cancel_upload(file_id)
        logger.info("File replacement started", file_id=file_id)
        return ReplacementUpload(self, file_id)

    def update(self, file_id: int, fragments: Iterable[FragmentEnvelope]) -> FileMetadata:
        """
        Replace a stored file with the given fragments.

        Args:
            file_id: File identifier
            fragments: Fragments of the new content, in order

        Returns:
            Metadata of the new file

        Raises:
            NotFoundError: If no record exists for file_id
            IncompleteUploadError: If the fragments end before the upload completes
        """
        replacement = self.replace(file_id)
        for envelope in fragments:
            replacement.submit(envelope)

        if not replacement.completed:
            logger.error(
                "Replacement upload incomplete, file is now missing",
                file_id=file_id,
                buffered=self.coordinator.buffered_count(file_id)
            )
            raise IncompleteUploadError(
                f"Replacement for file ID {file_id} ended before all chunks were received"
            )
        return replacement.result

    def download_in_chunks(self, file_id: int, chunk_size: Optional[int] = None) -> FragmentSequence:
        """
        Download entry point: get a stored file as a restartable fragment sequence.

        Args:
            file_id: File identifier
            chunk_size: Fragment size override (config.download_chunk_size if omitted)

        Raises:
            NotFoundError: If no record exists for file_id
            StorageError: If the artifact cannot be read
        """
        return self.splitter.split_for_download(
            file_id,
            chunk_size if chunk_size is not None else self.config.download_chunk_size
        )

    def sweep_expired(self) -> List[Tuple[int, str]]:
        """Evict uploads idle for longer than config.upload_ttl_seconds."""
        stale = self.coordinator.sweep_expired(self.config.upload_ttl_seconds)
        if stale:
            logger.info(
                "Expired upload cleanup completed",
                cleaned_up_count=len(stale),
                active_uploads=self.coordinator.get_active_upload_count()
            )
        return stale

    def _maybe_sweep(self) -> None:
        current_time = time.time()
        if current_time - self._last_sweep_time < self.config.sweep_interval_seconds:
            return
        if not self._sweep_lock.acquire(blocking=False):
            return
        try:
            self._last_sweep_time = current_time
            self.sweep_expired()
        finally:
            self._sweep_lock.release()

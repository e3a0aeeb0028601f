"""Manages in-flight uploads and per-file fragment buffering."""

import os
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
import structlog

from chunkvault.common.errors import BadIndexError, UploadAbandonedError
from chunkvault.common.models import FileMetadata, FragmentEnvelope, UploadOutcome
from chunkvault.service.metadata_recorder import MetadataRecorder
from chunkvault.service.reassembler import Reassembler

logger = structlog.get_logger(__name__)


@dataclass
class ChunkBuffer:
    """Fragments received so far for one upload."""

    file_id: int
    total_chunks: int
    fragments: List[bytes] = field(default_factory=list)

    # Timestamp tracking for expiry
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)

    # Set once the buffer has left the coordinator's map
    closed: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def append(self, data: bytes) -> None:
        """Append the next fragment."""
        self.fragments.append(data)
        self.last_activity = time.time()

    def count(self) -> int:
        return len(self.fragments)

    def total_size(self) -> int:
        return sum(len(f) for f in self.fragments)

    def idle_seconds(self) -> float:
        """Get the time since the last accepted fragment in seconds."""
        return time.time() - self.last_activity

    def is_complete(self) -> bool:
        """Check if all fragments have been received."""
        return len(self.fragments) == self.total_chunks


EvictionCallback = Callable[[int, ChunkBuffer], None]


class UploadCoordinator:
    """
    Accepts fragments, enforces strict in-order delivery and finalizes
    complete uploads.

    The buffer map is guarded by a short-lived map lock; everything that
    reads and mutates a single buffer runs under that buffer's own lock, so
    uploads of different files never wait on each other's I/O.
    """

    def __init__(
        self,
        reassembler: Reassembler,
        recorder: MetadataRecorder,
        on_evict: Optional[EvictionCallback] = None
    ):
        """
        Initialize the coordinator.

        Args:
            reassembler: Writes complete uploads to storage
            recorder: Records metadata of written artifacts
            on_evict: Called with (file_id, buffer) for every expired buffer
        """
        self.reassembler = reassembler
        self.recorder = recorder
        self.on_evict = on_evict

        self._buffers: Dict[int, ChunkBuffer] = {}
        self._abandoned: Dict[int, float] = {}
        self._map_lock = threading.Lock()

    def accept_fragment(self, envelope: FragmentEnvelope) -> UploadOutcome:
        """
        Accept one fragment.

        Args:
            envelope: Fragment with its position and declared total

        Returns:
            Outcome of the submission

        Raises:
            UploadAbandonedError: If the upload expired and this is not chunk 0
            EmptyUploadError, StorageError, ReferenceNotFoundError: If
                finalization of a complete upload fails
        """
        outcome, _ = self.submit(envelope)
        return outcome

    def submit(self, envelope: FragmentEnvelope) -> Tuple[UploadOutcome, Optional[FileMetadata]]:
        """
        Accept one fragment and return the recorded metadata on completion.

        Returns:
            (outcome, metadata) where metadata is set only for COMPLETED
        """
        try:
            envelope.check_index()
        except BadIndexError as e:
            logger.warning("Fragment rejected", file_id=envelope.file_id, error=str(e))
            return UploadOutcome.REJECTED_BAD_INDEX, None

        while True:
            buffer = self._get_or_open(envelope)
            if buffer is None:
                logger.warning(
                    "Received out-of-order chunk",
                    file_id=envelope.file_id,
                    chunk_index=envelope.chunk_index,
                    expected_index=0
                )
                return UploadOutcome.OUT_OF_ORDER_DROPPED, None

            with buffer.lock:
                if buffer.closed:
                    # Finalized, cancelled or evicted while we waited
                    continue
                return self._accept_locked(buffer, envelope)

    def _get_or_open(self, envelope: FragmentEnvelope) -> Optional[ChunkBuffer]:
        file_id = envelope.file_id
        with self._map_lock:
            buffer = self._buffers.get(file_id)
            if buffer is not None:
                return buffer

            if file_id in self._abandoned:
                if envelope.chunk_index != 0:
                    raise UploadAbandonedError(file_id)
                del self._abandoned[file_id]

            if envelope.chunk_index != 0:
                return None

            buffer = ChunkBuffer(file_id=file_id, total_chunks=envelope.total_chunks)
            self._buffers[file_id] = buffer

        logger.info("Upload started", file_id=file_id, total_chunks=envelope.total_chunks)
        return buffer

    def _accept_locked(
        self,
        buffer: ChunkBuffer,
        envelope: FragmentEnvelope
    ) -> Tuple[UploadOutcome, Optional[FileMetadata]]:
        file_id = buffer.file_id

        if envelope.total_chunks != buffer.total_chunks:
            logger.warning(
                "Fragment rejected: total chunks changed mid-upload",
                file_id=file_id,
                total_chunks=envelope.total_chunks,
                expected_total=buffer.total_chunks
            )
            return UploadOutcome.REJECTED_BAD_INDEX, None

        expected = buffer.count()
        if envelope.chunk_index != expected:
            logger.warning(
                "Received out-of-order chunk",
                file_id=file_id,
                chunk_index=envelope.chunk_index,
                expected_index=expected
            )
            return UploadOutcome.OUT_OF_ORDER_DROPPED, None

        buffer.append(envelope.payload)
        logger.debug(
            "Chunk added",
            file_id=file_id,
            chunk_index=envelope.chunk_index,
            received=buffer.count(),
            total=buffer.total_chunks
        )

        if not buffer.is_complete():
            return UploadOutcome.ACCEPTED, None

        logger.info("Upload complete, all chunks received", file_id=file_id)
        try:
            record = self._finalize(buffer, envelope)
        except Exception:
            # Give the caller a chance to resend the last fragment
            buffer.fragments.pop()
            if not buffer.fragments:
                self._remove(buffer)
            raise

        self._remove(buffer)
        return UploadOutcome.COMPLETED, record

    def _finalize(self, buffer: ChunkBuffer, envelope: FragmentEnvelope) -> FileMetadata:
        # Nothing is written for a file that cannot be recorded
        self.recorder.check_references(buffer.file_id, envelope.submission_id, envelope.student_id)

        result = self.reassembler.finalize(
            buffer.file_id,
            envelope.file_name,
            envelope.file_type,
            buffer.fragments
        )
        return self.recorder.record_completed_upload(
            file_id=buffer.file_id,
            storage_path=result.storage_path,
            total_size=result.total_size,
            file_type=envelope.file_type,
            file_name=os.path.basename(result.storage_path),
            submission_id=envelope.submission_id,
            student_id=envelope.student_id,
        )

    def _remove(self, buffer: ChunkBuffer) -> None:
        with self._map_lock:
            buffer.closed = True
            if self._buffers.get(buffer.file_id) is buffer:
                del self._buffers[buffer.file_id]

    def buffered_count(self, file_id: int) -> int:
        """Get the number of fragments buffered for file_id (0 if none)."""
        with self._map_lock:
            buffer = self._buffers.get(file_id)
        if buffer is None:
            return 0
        with buffer.lock:
            return buffer.count()

    def get_active_upload_count(self) -> int:
        """Get the number of uploads in flight."""
        with self._map_lock:
            return len(self._buffers)

    def cancel_upload(self, file_id: int) -> None:
        """
        Discard the buffer of an upload, if any.

        Args:
            file_id: File identifier
        """
        with self._map_lock:
            buffer = self._buffers.pop(file_id, None)
            if buffer is not None:
                buffer.closed = True
        if buffer is not None:
            logger.info("Upload cancelled", file_id=file_id, received_chunks=buffer.count())

    def sweep_expired(self, max_idle_seconds: float) -> List[Tuple[int, str]]:
        """
        Evict uploads that received no fragment for longer than max_idle_seconds.

        Evicted ids are remembered for one further period so that a late
        fragment is reported as UploadAbandonedError instead of being
        silently dropped. Buffers busy with an in-flight call are skipped.

        Args:
            max_idle_seconds: Idle time after which an upload is abandoned

        Returns:
            List of (file_id, reason) tuples for evicted uploads
        """
        evicted: List[Tuple[int, str, ChunkBuffer]] = []
        now = time.time()

        with self._map_lock:
            for file_id, buffer in list(self._buffers.items()):
                idle = buffer.idle_seconds()
                if idle <= max_idle_seconds:
                    continue
                if not buffer.lock.acquire(blocking=False):
                    continue
                try:
                    buffer.closed = True
                    del self._buffers[file_id]
                    self._abandoned[file_id] = now
                finally:
                    buffer.lock.release()
                reason = f"Upload idle for {idle:.1f}s > {max_idle_seconds}s"
                evicted.append((file_id, reason, buffer))

            for file_id, evicted_at in list(self._abandoned.items()):
                if now - evicted_at > max_idle_seconds:
                    del self._abandoned[file_id]

        for file_id, reason, buffer in evicted:
            logger.warning(
                "Upload abandoned: buffer expired",
                file_id=file_id,
                reason=reason,
                received_chunks=buffer.count(),
                total_chunks=buffer.total_chunks,
                buffered_bytes=buffer.total_size()
            )
            if self.on_evict:
                try:
                    self.on_evict(file_id, buffer)
                except Exception as e:
                    logger.error(
                        "Error in eviction callback",
                        file_id=file_id,
                        error=str(e),
                        exc_info=True
                    )

        return [(file_id, reason) for file_id, reason, _ in evicted]

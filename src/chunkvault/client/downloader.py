"""Client for downloading stored files fragment by fragment."""

from typing import Callable, Dict, Optional
import structlog

from chunkvault.common.chunking import reassemble_chunks
from chunkvault.common.models import FragmentEnvelope
from chunkvault.service.file_service import FileService

logger = structlog.get_logger(__name__)


class DownloadState:
    """State for accumulating download fragments."""

    def __init__(self, file_id: int, total_chunks: int, keep_data: bool = True):
        self.file_id = file_id
        self.total_chunks = total_chunks
        self.keep_data = keep_data
        self.chunks: Dict[int, bytes] = {}
        self.received_chunks = 0
        self.received_bytes = 0

    def add_chunk(self, envelope: FragmentEnvelope) -> None:
        """
        Add a fragment to the download.

        Raises:
            ValueError: If the fragment does not continue the sequence
        """
        if envelope.chunk_index != self.received_chunks:
            raise ValueError(
                f"Unexpected chunk {envelope.chunk_index} for file ID {self.file_id}, "
                f"expected {self.received_chunks}"
            )
        if self.keep_data:
            self.chunks[envelope.chunk_index] = envelope.payload
        self.received_chunks += 1
        self.received_bytes += len(envelope.payload)

    def is_complete(self) -> bool:
        """Check if all fragments have been received."""
        return self.received_chunks >= self.total_chunks

    def get_complete_data(self) -> bytes:
        """
        Get the reassembled file content.

        Raises:
            ValueError: If the download is incomplete or payloads were not kept
        """
        if not self.is_complete():
            raise ValueError(f"Download for file ID {self.file_id} is not complete")
        if not self.keep_data:
            raise ValueError(f"Download for file ID {self.file_id} did not keep payloads")
        return reassemble_chunks([self.chunks[i] for i in sorted(self.chunks)])


class FileDownloader:
    """Pulls the fragments of a stored file."""

    def __init__(self, service: FileService):
        self.service = service

    def download(
        self,
        file_id: int,
        output_path: str,
        chunk_size: Optional[int] = None,
        callback: Optional[Callable[[DownloadState], None]] = None
    ) -> int:
        """
        Download a stored file to output_path.

        Args:
            file_id: File identifier
            output_path: Destination path
            chunk_size: Fragment size override
            callback: Optional callback for progress updates

        Returns:
            Number of bytes written
        """
        sequence = self.service.download_in_chunks(file_id, chunk_size)
        state = DownloadState(file_id, len(sequence), keep_data=False)

        with open(output_path, 'wb') as f:
            for envelope in sequence:
                state.add_chunk(envelope)
                f.write(envelope.payload)
                if callback:
                    callback(state)

        logger.info(
            "Download complete",
            file_id=file_id,
            output=output_path,
            total_chunks=state.total_chunks,
            bytes=state.received_bytes
        )
        return state.received_bytes

    def fetch(self, file_id: int, chunk_size: Optional[int] = None) -> bytes:
        """Download a stored file into memory."""
        sequence = self.service.download_in_chunks(file_id, chunk_size)
        state = DownloadState(file_id, len(sequence))
        for envelope in sequence:
            state.add_chunk(envelope)
        return state.get_complete_data()

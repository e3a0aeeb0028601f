"""Data models for upload fragments and stored file metadata."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from chunkvault.common.errors import BadIndexError


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class UploadOutcome(str, Enum):
    """Result reported for every submitted fragment."""

    ACCEPTED = "ACCEPTED"
    REJECTED_BAD_INDEX = "REJECTED_BAD_INDEX"
    OUT_OF_ORDER_DROPPED = "OUT_OF_ORDER_DROPPED"
    COMPLETED = "COMPLETED"  # Last fragment accepted and file finalized


class FragmentEnvelope(BaseModel):
    """One fragment of a file, as submitted for upload or produced for download."""

    file_id: int = Field(..., description="Identifier of the file being transferred")
    chunk_index: int = Field(..., description="Zero-based position of this fragment")
    total_chunks: int = Field(..., description="Total number of fragments in the file")
    payload: bytes = Field(b"", description="Raw fragment bytes")

    # Descriptive fields, authoritative on the final fragment of an upload
    file_name: Optional[str] = Field(None, description="Declared file name")
    file_type: Optional[str] = Field(None, description="Declared file type/extension")

    # Owning references, authoritative on the final fragment of an upload
    student_id: Optional[int] = Field(None, description="Uploading student")
    submission_id: Optional[int] = Field(None, description="Owning submission")

    def check_index(self) -> None:
        """
        Validate the chunk index against the declared total.

        Raises:
            BadIndexError: If chunk_index is not in [0, total_chunks)
        """
        if self.chunk_index < 0 or self.chunk_index >= self.total_chunks:
            raise BadIndexError(
                f"Invalid chunk index {self.chunk_index} for file ID {self.file_id} "
                f"(total chunks: {self.total_chunks})"
            )


class FileMetadata(BaseModel):
    """Durable record describing one reassembled artifact."""

    id: int = Field(..., description="File identifier")
    file_name: str = Field(..., max_length=255, description="Artifact file name")
    file_size: int = Field(..., ge=0, description="Exact size in bytes")
    file_type: Optional[str] = Field(None, max_length=100, description="Declared file type")
    storage_path: str = Field(..., max_length=500, description="Path of the artifact on disk")
    submission_id: int = Field(..., description="Owning submission")
    student_id: int = Field(..., description="Uploading student")
    created_at: datetime = Field(default_factory=utcnow)
    last_update: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)


class ReassembledFile(BaseModel):
    """Facts derived while writing an artifact."""

    storage_path: str
    total_size: int

"""Configuration management using Pydantic settings."""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

from chunkvault.common.chunking import DEFAULT_CHUNK_SIZE


class StorageConfig(BaseSettings):
    """Artifact storage and upload buffering configuration."""

    model_config = SettingsConfigDict(env_prefix='CHUNKVAULT_')

    storage_dir: str = "./uploads"
    metadata_path: str = "./uploads/metadata.json"
    log_level: str = "INFO"

    # Fragment size used when splitting a stored file for download
    download_chunk_size: int = DEFAULT_CHUNK_SIZE

    # In-flight upload expiry: buffers idle longer than this are evicted (15 minutes)
    upload_ttl_seconds: int = 900
    # Minimum time between two expiry sweeps triggered by incoming fragments
    sweep_interval_seconds: int = 60

    # Reference resolution
    # Comma-separated lists of student / submission ids that resolve.
    # Empty string = every id resolves (NOT RECOMMENDED outside local use)
    known_student_ids: str = ""
    known_submission_ids: str = ""

    @field_validator('known_student_ids', 'known_submission_ids')
    @classmethod
    def parse_id_list(cls, v: str) -> str:
        """Validate and normalize a comma-separated id list."""
        v = v.strip()
        for item in v.split(','):
            item = item.strip()
            if item and not item.isdigit():
                raise ValueError(f"Invalid id in list: {item!r}")
        return v

    @field_validator('download_chunk_size')
    @classmethod
    def check_chunk_size(cls, v: int) -> int:
        """Reject non-positive chunk sizes."""
        if v <= 0:
            raise ValueError("download_chunk_size must be positive")
        return v

    def get_known_student_ids_list(self) -> List[int]:
        """Get list of student ids that resolve."""
        return _split_ids(self.known_student_ids)

    def get_known_submission_ids_list(self) -> List[int]:
        """Get list of submission ids that resolve."""
        return _split_ids(self.known_submission_ids)


def _split_ids(value: str) -> List[int]:
    if not value:
        return []
    return [int(item.strip()) for item in value.split(',') if item.strip()]

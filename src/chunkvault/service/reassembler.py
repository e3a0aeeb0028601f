"""Writes buffered fragments to durable storage as a single artifact."""

import os
from typing import Optional, Sequence
import structlog

from chunkvault.common.errors import EmptyUploadError, StorageError
from chunkvault.common.models import ReassembledFile

logger = structlog.get_logger(__name__)


def artifact_name(file_name: Optional[str], file_id: int, file_type: Optional[str]) -> str:
    """
    Build the artifact file name ``{name}<{file_id}>.{type}``.

    Path separators in the declared name and type are replaced so the
    artifact always lands directly inside the storage directory.
    """
    return f"{_safe(file_name)}<{file_id}>.{_safe(file_type)}"


def _safe(value: Optional[str]) -> str:
    value = value or ""
    for sep in {os.sep, os.altsep, '/'} - {None}:
        value = value.replace(sep, '_')
    return value


class Reassembler:
    """Concatenates fragments into an artifact under a base directory."""

    def __init__(self, base_dir: str):
        """
        Initialize the reassembler.

        Args:
            base_dir: Directory receiving the artifacts (created on demand)
        """
        self.base_dir = base_dir

    def finalize(
        self,
        file_id: int,
        file_name: Optional[str],
        file_type: Optional[str],
        fragments: Sequence[bytes]
    ) -> ReassembledFile:
        """
        Write all fragments, in order, to a single artifact.

        The bytes go to a sibling ``.part`` file first, which replaces the
        final path only once every fragment has been written.

        Args:
            file_id: File identifier
            file_name: Declared file name
            file_type: Declared file type
            fragments: Fragments in index order

        Returns:
            Path of the artifact and its exact size in bytes

        Raises:
            EmptyUploadError: If there are no fragments
            StorageError: If the directory or file cannot be written
        """
        if not fragments:
            raise EmptyUploadError(f"No chunks found for file ID: {file_id}")

        storage_path = os.path.join(self.base_dir, artifact_name(file_name, file_id, file_type))
        part_path = f"{storage_path}.part"

        try:
            os.makedirs(self.base_dir, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create storage directory", base_dir=self.base_dir, error=str(e))
            raise StorageError(f"Cannot create storage directory {self.base_dir}: {e}") from e

        total_size = 0
        try:
            with open(part_path, 'wb') as f:
                for fragment in fragments:
                    f.write(fragment)
                    total_size += len(fragment)
            os.replace(part_path, storage_path)
        except OSError as e:
            logger.error(
                "Error finalizing file upload",
                file_id=file_id,
                storage_path=storage_path,
                error=str(e)
            )
            self._discard_partial(part_path)
            raise StorageError(f"Error finalizing file upload for file ID {file_id}: {e}") from e

        logger.info(
            "File upload finalized",
            file_id=file_id,
            storage_path=storage_path,
            total_size=total_size,
            fragments=len(fragments)
        )

        return ReassembledFile(storage_path=storage_path, total_size=total_size)

    def _discard_partial(self, part_path: str) -> None:
        try:
            os.remove(part_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Partial artifact left on disk", path=part_path, error=str(e))

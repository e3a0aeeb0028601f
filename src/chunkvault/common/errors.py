"""Error kinds raised by the upload, download and metadata paths."""


class ChunkVaultError(Exception):
    """Base class for all chunkvault errors."""


class BadIndexError(ChunkVaultError, ValueError):
    """A fragment's chunk index is outside [0, total_chunks)."""


class EmptyUploadError(ChunkVaultError):
    """Finalization was requested with no buffered fragments."""


class StorageError(ChunkVaultError):
    """Directory or file I/O on the artifact store failed."""


class ReferenceNotFoundError(ChunkVaultError):
    """The owning student or submission could not be resolved."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found for ID: {entity_id}")


class NotFoundError(ChunkVaultError):
    """No file metadata exists for the requested id."""

    def __init__(self, file_id):
        self.file_id = file_id
        super().__init__(f"File metadata not found for ID: {file_id}")


class UploadAbandonedError(ChunkVaultError):
    """A fragment arrived for an upload whose buffer already expired."""

    def __init__(self, file_id):
        self.file_id = file_id
        super().__init__(
            f"Upload for file ID {file_id} expired; restart it from chunk 0"
        )


class IncompleteUploadError(ChunkVaultError):
    """A replacement upload ran out of fragments before completing."""

"""Contracts and implementations for the lookup and metadata store collaborators."""

import json
import os
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol
import structlog

from chunkvault.common.config import StorageConfig
from chunkvault.common.errors import StorageError
from chunkvault.common.models import FileMetadata

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class User:
    """Uploading student, as seen by this service."""

    id: int


@dataclass(frozen=True)
class Submission:
    """Submission a file belongs to, as seen by this service."""

    id: int


class LookupService(Protocol):
    """Resolves owner and association references by id."""

    def resolve_user(self, user_id: int) -> Optional[User]:
        ...

    def resolve_submission(self, submission_id: int) -> Optional[Submission]:
        ...


class MetadataStore(Protocol):
    """Durable create/read/delete over FileMetadata records."""

    def save(self, record: FileMetadata) -> FileMetadata:
        ...

    def get(self, file_id: int) -> Optional[FileMetadata]:
        ...

    def delete(self, file_id: int) -> bool:
        ...

    def list_all(self) -> List[FileMetadata]:
        ...


class InMemoryLookup:
    """Lookup backed by sets of registered ids."""

    def __init__(
        self,
        user_ids: Iterable[int] = (),
        submission_ids: Iterable[int] = (),
        allow_any_user: bool = False,
        allow_any_submission: bool = False
    ):
        """
        Initialize the lookup.

        Args:
            user_ids: Student ids that resolve
            submission_ids: Submission ids that resolve
            allow_any_user: Resolve every student id regardless of registration
            allow_any_submission: Resolve every submission id regardless of registration
        """
        self._user_ids = set(user_ids)
        self._submission_ids = set(submission_ids)
        self.allow_any_user = allow_any_user
        self.allow_any_submission = allow_any_submission

        if allow_any_user or allow_any_submission:
            logger.warning(
                "Lookup resolves unregistered ids",
                any_user=allow_any_user,
                any_submission=allow_any_submission
            )

    @classmethod
    def from_config(cls, config: StorageConfig) -> "InMemoryLookup":
        """Build a lookup from the configured id lists; an empty list resolves any id."""
        user_ids = config.get_known_student_ids_list()
        submission_ids = config.get_known_submission_ids_list()
        return cls(
            user_ids=user_ids,
            submission_ids=submission_ids,
            allow_any_user=not user_ids,
            allow_any_submission=not submission_ids,
        )

    def register_user(self, user_id: int) -> None:
        self._user_ids.add(user_id)

    def register_submission(self, submission_id: int) -> None:
        self._submission_ids.add(submission_id)

    def resolve_user(self, user_id: int) -> Optional[User]:
        if self.allow_any_user or user_id in self._user_ids:
            return User(id=user_id)
        return None

    def resolve_submission(self, submission_id: int) -> Optional[Submission]:
        if self.allow_any_submission or submission_id in self._submission_ids:
            return Submission(id=submission_id)
        return None


class InMemoryMetadataStore:
    """Thread-safe dict-backed metadata store."""

    def __init__(self):
        self._records: Dict[int, FileMetadata] = {}
        self._lock = threading.Lock()

    def save(self, record: FileMetadata) -> FileMetadata:
        with self._lock:
            self._records[record.id] = record
        return record

    def get(self, file_id: int) -> Optional[FileMetadata]:
        with self._lock:
            return self._records.get(file_id)

    def delete(self, file_id: int) -> bool:
        with self._lock:
            return self._records.pop(file_id, None) is not None

    def list_all(self) -> List[FileMetadata]:
        with self._lock:
            return [self._records[k] for k in sorted(self._records)]


class JsonFileMetadataStore(InMemoryMetadataStore):
    """
    Metadata store persisted as a single JSON document.

    The whole document is loaded on construction and rewritten after every
    mutation (write to a temporary file, then os.replace). A failed write
    leaves both the document and the in-memory records unchanged.
    """

    def __init__(self, path: str):
        """
        Initialize the store.

        Args:
            path: Location of the JSON document (created on first save)

        Raises:
            StorageError: If an existing document cannot be read or parsed
        """
        super().__init__()
        self.path = path
        self._load()

    def _load(self) -> None:
        if not os.path.exists(self.path):
            return

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
            records = [FileMetadata.model_validate(item) for item in raw.get("files", [])]
        except (OSError, ValueError, AttributeError) as e:
            # ValueError covers both malformed JSON and invalid records
            logger.error("Cannot load metadata", path=self.path, error=str(e))
            raise StorageError(f"Cannot load metadata from {self.path}: {e}") from e

        for record in records:
            self._records[record.id] = record

        logger.debug("Metadata loaded", path=self.path, records=len(self._records))

    def _flush(self, records: Dict[int, FileMetadata]) -> None:
        document = {
            "files": [records[k].model_dump(mode='json') for k in sorted(records)]
        }
        tmp_path = f"{self.path}.tmp"
        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("Cannot write metadata", path=self.path, error=str(e))
            raise StorageError(f"Cannot write metadata to {self.path}: {e}") from e

    def save(self, record: FileMetadata) -> FileMetadata:
        with self._lock:
            records = dict(self._records)
            records[record.id] = record
            # Memory only changes once the document is on disk
            self._flush(records)
            self._records = records
        return record

    def delete(self, file_id: int) -> bool:
        with self._lock:
            if file_id not in self._records:
                return False
            records = dict(self._records)
            del records[file_id]
            self._flush(records)
            self._records = records
            return True

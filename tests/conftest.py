"""Shared fixtures."""

import os
import tempfile
import pytest

from chunkvault.common.config import StorageConfig
from chunkvault.service.collaborators import InMemoryLookup, InMemoryMetadataStore
from chunkvault.service.file_service import FileService
from chunkvault.service.metadata_recorder import MetadataRecorder
from chunkvault.service.reassembler import Reassembler
from chunkvault.service.upload_coordinator import UploadCoordinator

STUDENT_ID = 7
SUBMISSION_ID = 3


@pytest.fixture
def storage_dir():
    """Temporary directory for artifacts."""
    with tempfile.TemporaryDirectory() as d:
        yield os.path.join(d, "uploads")


@pytest.fixture
def lookup():
    return InMemoryLookup(user_ids=[STUDENT_ID], submission_ids=[SUBMISSION_ID])


@pytest.fixture
def store():
    return InMemoryMetadataStore()


@pytest.fixture
def recorder(lookup, store):
    return MetadataRecorder(lookup, store)


@pytest.fixture
def coordinator(storage_dir, recorder):
    return UploadCoordinator(Reassembler(storage_dir), recorder)


@pytest.fixture
def config(storage_dir):
    return StorageConfig(
        storage_dir=storage_dir,
        metadata_path=os.path.join(storage_dir, "metadata.json"),
        upload_ttl_seconds=60,
        sweep_interval_seconds=3600,
    )


@pytest.fixture
def service(config, lookup, store):
    return FileService(config, lookup=lookup, store=store)

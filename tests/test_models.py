"""Tests for data models."""

import pytest
from pydantic import ValidationError

from chunkvault.common.errors import BadIndexError
from chunkvault.common.models import (
    FileMetadata,
    FragmentEnvelope,
    UploadOutcome,
)


def test_fragment_envelope_creation():
    """Test creating a fragment envelope."""
    envelope = FragmentEnvelope(
        file_id=42,
        chunk_index=0,
        total_chunks=3,
        payload=b"abcd",
        file_name="essay",
        file_type="pdf",
        student_id=7,
        submission_id=3
    )

    assert envelope.file_id == 42
    assert envelope.chunk_index == 0
    assert envelope.payload == b"abcd"
    assert envelope.file_name == "essay"
    envelope.check_index()


def test_fragment_envelope_allows_out_of_range_index():
    """Test range checking is deferred to check_index."""
    envelope = FragmentEnvelope(file_id=1, chunk_index=5, total_chunks=3, payload=b"x")

    with pytest.raises(BadIndexError, match="Invalid chunk index 5"):
        envelope.check_index()


def test_fragment_envelope_negative_index():
    """Test a negative index fails the range check."""
    envelope = FragmentEnvelope(file_id=1, chunk_index=-1, total_chunks=3)

    with pytest.raises(BadIndexError):
        envelope.check_index()


def test_bad_index_error_is_value_error():
    """Test BadIndexError can be handled as a ValueError."""
    assert issubclass(BadIndexError, ValueError)


def test_upload_outcome_values():
    """Test outcome enum serializes to its name."""
    assert UploadOutcome.COMPLETED == "COMPLETED"
    assert UploadOutcome("OUT_OF_ORDER_DROPPED") is UploadOutcome.OUT_OF_ORDER_DROPPED


def test_file_metadata_serialization():
    """Test metadata round trip through a dict."""
    record = FileMetadata(
        id=42,
        file_name="essay<42>.pdf",
        file_size=10,
        file_type="pdf",
        storage_path="/tmp/essay<42>.pdf",
        submission_id=3,
        student_id=7
    )

    data = record.model_dump(mode='json')
    assert data["id"] == 42
    assert data["file_size"] == 10
    assert FileMetadata.model_validate(data) == record


def test_file_metadata_rejects_negative_size():
    """Test file size must not be negative."""
    with pytest.raises(ValidationError):
        FileMetadata(
            id=1,
            file_name="a<1>.txt",
            file_size=-1,
            storage_path="/tmp/a<1>.txt",
            submission_id=1,
            student_id=1
        )


def test_file_metadata_is_immutable():
    """Test metadata records cannot be modified in place."""
    record = FileMetadata(
        id=1,
        file_name="a<1>.txt",
        file_size=1,
        storage_path="/tmp/a<1>.txt",
        submission_id=1,
        student_id=1
    )

    with pytest.raises(ValidationError):
        record.file_size = 2

"""Tests for writing artifacts."""

import os
import tempfile
from unittest.mock import patch
import pytest

from chunkvault.common.errors import EmptyUploadError, StorageError
from chunkvault.service.reassembler import Reassembler, artifact_name


def test_artifact_name_format():
    """Test the artifact name embeds the file id between angle brackets."""
    assert artifact_name("essay", 42, "pdf") == "essay<42>.pdf"


def test_artifact_name_strips_path_separators():
    """Test declared names cannot escape the storage directory."""
    assert artifact_name("../../etc/passwd", 1, "txt") == ".._.._etc_passwd<1>.txt"
    assert artifact_name("report", 1, "application/pdf") == "report<1>.application_pdf"


def test_artifact_name_missing_fields():
    """Test missing name and type give empty parts."""
    assert artifact_name(None, 5, None) == "<5>."


def test_finalize_writes_fragments_in_order(storage_dir):
    """Test the artifact is the concatenation of the fragments."""
    reassembler = Reassembler(storage_dir)
    fragments = [b"Hello, ", b"World", b"!"]

    result = reassembler.finalize(1, "greeting", "txt", fragments)

    assert result.storage_path == os.path.join(storage_dir, "greeting<1>.txt")
    assert result.total_size == 13
    with open(result.storage_path, 'rb') as f:
        assert f.read() == b"Hello, World!"


def test_finalize_creates_nested_directory():
    """Test the storage directory is created recursively."""
    with tempfile.TemporaryDirectory() as d:
        base_dir = os.path.join(d, "a", "b", "c")
        result = Reassembler(base_dir).finalize(3, "f", "bin", [b"\x00\x01"])

        assert os.path.isdir(base_dir)
        assert os.path.getsize(result.storage_path) == 2


def test_finalize_counts_empty_fragments(storage_dir):
    """Test zero-length fragments contribute zero bytes."""
    result = Reassembler(storage_dir).finalize(4, "f", "bin", [b"", b"abc", b""])

    assert result.total_size == 3


def test_finalize_without_fragments(storage_dir):
    """Test finalizing nothing raises EmptyUploadError."""
    with pytest.raises(EmptyUploadError, match="No chunks found for file ID: 9"):
        Reassembler(storage_dir).finalize(9, "f", "bin", [])


def test_finalize_overwrites_previous_artifact(storage_dir):
    """Test a second finalize for the same name replaces the artifact."""
    reassembler = Reassembler(storage_dir)
    reassembler.finalize(1, "f", "txt", [b"old content"])

    result = reassembler.finalize(1, "f", "txt", [b"new"])

    with open(result.storage_path, 'rb') as f:
        assert f.read() == b"new"


def test_finalize_directory_is_a_file():
    """Test an unusable storage directory raises StorageError."""
    with tempfile.NamedTemporaryFile() as f:
        with pytest.raises(StorageError, match="Cannot create storage directory"):
            Reassembler(f.name).finalize(1, "f", "txt", [b"data"])


def test_finalize_write_failure_leaves_no_partial_file(storage_dir):
    """Test a failed write removes the partial file and leaves no artifact."""
    reassembler = Reassembler(storage_dir)

    with patch("chunkvault.service.reassembler.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(StorageError, match="disk full"):
            reassembler.finalize(1, "f", "txt", [b"abc", b"def"])

    assert os.listdir(storage_dir) == []

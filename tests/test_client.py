"""Tests for the upload and download clients."""

import os
import pytest

from chunkvault.client.downloader import DownloadState, FileDownloader
from chunkvault.client.uploader import FileUploader
from chunkvault.common.errors import IncompleteUploadError, ReferenceNotFoundError
from chunkvault.common.models import FragmentEnvelope

STUDENT_ID = 7
SUBMISSION_ID = 3


@pytest.fixture
def local_file(storage_dir):
    def _write(name, data):
        directory = os.path.join(os.path.dirname(storage_dir), "local")
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, name)
        with open(path, 'wb') as f:
            f.write(data)
        return path
    return _write


def test_upload_file(service, local_file):
    """Test a local file is uploaded in fragments and recorded."""
    path = local_file("report.pdf", b"x" * 25)

    record = FileUploader(service, chunk_size=10).upload_file(path, 1, STUDENT_ID, SUBMISSION_ID)

    assert record.file_size == 25
    assert record.file_type == "pdf"
    assert record.file_name == "report<1>.pdf"
    assert service.get_file_metadata(1) == record


def test_upload_file_type_override(service, local_file):
    """Test an explicit file type wins over the extension."""
    path = local_file("data", b"abc")

    record = FileUploader(service).upload_file(path, 1, STUDENT_ID, SUBMISSION_ID, file_type="csv")

    assert record.file_type == "csv"
    assert record.file_name == "data<1>.csv"


def test_upload_without_extension(service, local_file):
    """Test a file without extension gets the generic type."""
    path = local_file("data", b"abc")

    record = FileUploader(service).upload_file(path, 1, STUDENT_ID, SUBMISSION_ID)

    assert record.file_type == "bin"


def test_upload_empty_file(service, local_file):
    """Test an empty file uploads as a single empty fragment."""
    path = local_file("empty.txt", b"")

    record = FileUploader(service).upload_file(path, 1, STUDENT_ID, SUBMISSION_ID)

    assert record.file_size == 0
    assert os.path.getsize(record.storage_path) == 0


def test_upload_missing_file(service):
    """Test uploading a missing file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        FileUploader(service).upload_file("/nonexistent/file.txt", 1, STUDENT_ID, SUBMISSION_ID)


def test_upload_unknown_student(service, local_file):
    """Test a reference failure on the last fragment propagates to the caller."""
    path = local_file("a.txt", b"abc")

    with pytest.raises(ReferenceNotFoundError):
        FileUploader(service).upload_file(path, 1, 999, SUBMISSION_ID)

    assert service.get_file_metadata(1) is None


def test_upload_rejected_fragment(service, local_file):
    """Test a fragment that is not accepted stops the upload."""
    path = local_file("a.txt", b"abcdef")
    # Buffer for the same id opened with a different total
    service.receive_chunk(FragmentEnvelope(file_id=1, chunk_index=0, total_chunks=5, payload=b"z"))

    with pytest.raises(IncompleteUploadError, match="was not accepted"):
        FileUploader(service, chunk_size=3).upload_file(path, 1, STUDENT_ID, SUBMISSION_ID)


def test_replace_file(service, local_file):
    """Test replace_file swaps the stored content."""
    uploader = FileUploader(service, chunk_size=4)
    uploader.upload_file(local_file("v1.txt", b"first version"), 1, STUDENT_ID, SUBMISSION_ID)

    record = uploader.replace_file(local_file("v2.txt", b"second"), 1, STUDENT_ID, SUBMISSION_ID)

    assert record.file_size == 6
    assert record.file_name == "v2<1>.txt"
    assert FileDownloader(service).fetch(1) == b"second"


def test_download_to_file(service, local_file, storage_dir):
    """Test a stored file is written to the output path."""
    data = bytes(range(256)) * 3
    FileUploader(service, chunk_size=100).upload_file(
        local_file("blob.bin", data), 1, STUDENT_ID, SUBMISSION_ID
    )
    output = os.path.join(os.path.dirname(storage_dir), "out.bin")
    states = []

    written = FileDownloader(service).download(
        1, output, chunk_size=256, callback=lambda s: states.append(s.received_chunks)
    )

    assert written == len(data)
    assert states == [1, 2, 3]
    with open(output, 'rb') as f:
        assert f.read() == data


def test_fetch(service, local_file):
    """Test fetch returns the stored bytes."""
    FileUploader(service, chunk_size=3).upload_file(
        local_file("a.txt", b"hello world"), 1, STUDENT_ID, SUBMISSION_ID
    )

    assert FileDownloader(service).fetch(1, chunk_size=4) == b"hello world"


def envelope(index, payload=b"ab"):
    return FragmentEnvelope(file_id=1, chunk_index=index, total_chunks=2, payload=payload)


def test_download_state_collects_chunks():
    """Test state reassembles sequential fragments."""
    state = DownloadState(1, 2)
    state.add_chunk(envelope(0, b"ab"))
    assert not state.is_complete()

    state.add_chunk(envelope(1, b"c"))

    assert state.is_complete()
    assert state.received_bytes == 3
    assert state.get_complete_data() == b"abc"


def test_download_state_out_of_sequence():
    """Test a fragment out of sequence is rejected."""
    state = DownloadState(1, 2)

    with pytest.raises(ValueError, match="expected 0"):
        state.add_chunk(envelope(1))


def test_download_state_incomplete():
    """Test incomplete data cannot be retrieved."""
    state = DownloadState(1, 2)
    state.add_chunk(envelope(0))

    with pytest.raises(ValueError, match="not complete"):
        state.get_complete_data()


def test_download_state_without_payloads():
    """Test a streaming state does not hold payloads."""
    state = DownloadState(1, 2, keep_data=False)
    state.add_chunk(envelope(0))
    state.add_chunk(envelope(1))

    assert state.chunks == {}
    with pytest.raises(ValueError):
        state.get_complete_data()

"""Utilities for chunking local files and reassembling fragments."""

from typing import Iterator, List


# Default fragment size for uploads and downloads: 512 KB
DEFAULT_CHUNK_SIZE = 512 * 1024


def chunk_file(file_path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """
    Read a file and yield chunks of specified size.

    Args:
        file_path: Path to the file to chunk
        chunk_size: Maximum size of each chunk in bytes

    Yields:
        Chunks of binary data
    """
    with open(file_path, 'rb') as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            yield chunk


def reassemble_chunks(chunks: List[bytes]) -> bytes:
    """
    Reassemble a list of chunks into complete data.

    Args:
        chunks: List of binary chunks in order

    Returns:
        Complete binary data
    """
    return b''.join(chunks)


def calculate_chunk_count(file_size: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """
    Calculate how many chunks a file of the given size is split into.

    Args:
        file_size: Size of the file in bytes
        chunk_size: Maximum size of each chunk

    Returns:
        Number of chunks required (0 for an empty file)
    """
    if chunk_size <= 0:
        raise ValueError(f"Chunk size must be positive, got {chunk_size}")
    return (file_size + chunk_size - 1) // chunk_size
